"""
Tool actions bound to the session engine.
"""

from .appointment_booking import (
    BookAppointmentArgs,
    AppointmentBookingAction,
    create_booking_tool,
    summarize_booking
)

__all__ = [
    'BookAppointmentArgs',
    'AppointmentBookingAction',
    'create_booking_tool',
    'summarize_booking'
]
