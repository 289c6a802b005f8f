# enquiries/signals.py - Keep enquiries in step with their quotations

import logging

from django.dispatch import receiver

from quotes.events import (
    quotation_created,
    quotation_sent,
    quotation_accepted,
    quotation_declined,
    quotation_status_changed,
)

from .services import EnquiryLifecycle

logger = logging.getLogger(__name__)


@receiver(quotation_created)
def mark_enquiry_quoted(sender, quotation, **kwargs):
    """Move the parent enquiry to quoted when a quotation is drafted"""
    EnquiryLifecycle().on_quotation_created(quotation, **kwargs)
    logger.info(f"Enquiry {quotation.enquiry_id} marked as quoted by {quotation.quotation_no}")


@receiver(quotation_sent)
def log_quotation_sent(sender, quotation, **kwargs):
    EnquiryLifecycle().on_quotation_sent(quotation, **kwargs)


@receiver(quotation_accepted)
def close_enquiry_on_acceptance(sender, quotation, **kwargs):
    EnquiryLifecycle().on_quotation_accepted(quotation, **kwargs)


@receiver(quotation_declined)
def reject_enquiry_on_decline(sender, quotation, **kwargs):
    EnquiryLifecycle().on_quotation_declined(quotation, **kwargs)


@receiver(quotation_status_changed)
def log_quotation_status_change(sender, quotation, **kwargs):
    EnquiryLifecycle().on_quotation_status_changed(quotation, **kwargs)
