"""
Telephony provider integrations.
"""
from ispecia.services.voip.twilio_service import TwilioService, VoipError, twilio_service

__all__ = ["TwilioService", "VoipError", "twilio_service"]
