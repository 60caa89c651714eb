from adapters.aws.bedrock_provider import BedrockProvider

__all__ = [
    "BedrockProvider",
]
