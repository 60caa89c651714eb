from candor.auth.session_tokens import SessionTokenIssuer, SessionTokenPayload

__all__ = ["SessionTokenIssuer", "SessionTokenPayload"]
