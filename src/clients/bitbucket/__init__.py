from .client import BitbucketServerClient

__all__ = ["BitbucketServerClient"]
