"""
Quotation domain events.

The quotation lifecycle announces what happened to a quotation; the enquiry
app subscribes and updates the parent enquiry (status and activity trail).
Every event is sent with ``quotation``, ``actor`` (an AuthContext),
``old_status`` and ``new_status``.

Receivers run after the quotation write has been committed. A receiver that
fails is logged and never undoes or fails the quotation operation.
"""
import logging

from django.dispatch import Signal

logger = logging.getLogger(__name__)

quotation_created = Signal()
quotation_sent = Signal()
quotation_accepted = Signal()
quotation_declined = Signal()
quotation_status_changed = Signal()


def publish(signal, sender, **payload):
    """
    Deliver ``signal`` to every receiver, logging (not raising) receiver failures.
    Returns the list of (receiver, exception) pairs that failed.
    """
    failures = []
    for receiver, response in signal.send_robust(sender=sender, **payload):
        if isinstance(response, Exception):
            quotation = payload.get('quotation')
            logger.error(
                f"Event handler {getattr(receiver, '__qualname__', receiver)} failed for quotation "
                f"{getattr(quotation, 'quotation_no', '?')}: {response}",
                exc_info=(type(response), response, response.__traceback__),
            )
            failures.append((receiver, response))
    return failures
