from candor.webhooks.handler import WebhookHandler, WebhookResponse

__all__ = ["WebhookHandler", "WebhookResponse"]
