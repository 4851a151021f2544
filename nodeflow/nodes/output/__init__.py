"""Output nodes - responses to the caller."""

from .respond_to_webhook import RespondToWebhookNode

__all__ = ["RespondToWebhookNode"]
