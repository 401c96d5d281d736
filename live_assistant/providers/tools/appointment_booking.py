"""
Appointment booking tool offered to the remote model.

The model collects the patient's name, date, time and purpose in
conversation and calls `bookAppointment`; the request is forwarded to the
clinic's webhook when one is configured, otherwise the backend round trip is
simulated.
"""

import asyncio
from datetime import datetime
from typing import Dict, Any, Optional

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...models.data_models import BookingSummary
from ...utils.tool_dispatcher import ToolBinding
from ...utils.logging_config import get_logger


logger = get_logger("booking")


TOOL_NAME = "bookAppointment"
TOOL_DESCRIPTION = "Notify the clinic of a new appointment request."


class BookAppointmentArgs(BaseModel):
    """Arguments of a bookAppointment call."""
    model_config = ConfigDict(populate_by_name=True)

    client_name: str = Field(..., alias="clientName", description="Full name of the patient.")
    appointment_date: str = Field(..., alias="appointmentDate", description="Date (YYYY-MM-DD).")
    appointment_time: str = Field(..., alias="appointmentTime", description="Time (e.g., 4:30 PM).")
    purpose: str = Field(..., description="Reason for visit.")

    @field_validator('client_name', 'appointment_time', 'purpose')
    @classmethod
    def validate_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError('must not be blank')
        return v.strip()

    @field_validator('appointment_date')
    @classmethod
    def validate_date(cls, v):
        try:
            datetime.strptime(v.strip(), '%Y-%m-%d')
        except ValueError:
            raise ValueError('appointmentDate must be YYYY-MM-DD')
        return v.strip()


class AppointmentBookingAction:
    """
    Submits booking requests.

    Args:
        webhook_url: Endpoint receiving the booking as JSON; None simulates
        simulated_latency: Seconds the simulated backend takes
        timeout: Seconds before a webhook request fails
    """

    def __init__(self, webhook_url: Optional[str] = None, simulated_latency: float = 1.5, timeout: float = 10.0):
        self.webhook_url = webhook_url
        self.simulated_latency = simulated_latency
        self.timeout = timeout

    async def __call__(self, args: BookAppointmentArgs) -> Dict[str, Any]:
        if self.webhook_url:
            await self._post(args)
        else:
            await asyncio.sleep(self.simulated_latency)

        logger.info(
            f"📅 Booking submitted: {args.client_name} on {args.appointment_date} at {args.appointment_time}"
        )
        return {"info": "Booking submitted."}

    async def _post(self, args: BookAppointmentArgs) -> None:
        """Raises on transport failure or a non-2xx response."""
        body = args.model_dump(by_alias=True)
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            async with session.post(self.webhook_url, json=body) as resp:
                resp.raise_for_status()


def summarize_booking(args: BookAppointmentArgs) -> BookingSummary:
    return BookingSummary(
        name=args.client_name,
        date=args.appointment_date,
        time=args.appointment_time
    )


def create_booking_tool(webhook_url: Optional[str] = None, simulated_latency: float = 1.5) -> ToolBinding:
    """Build the bookAppointment binding."""
    return ToolBinding(
        name=TOOL_NAME,
        description=TOOL_DESCRIPTION,
        args_model=BookAppointmentArgs,
        action=AppointmentBookingAction(webhook_url=webhook_url, simulated_latency=simulated_latency),
        summarize=summarize_booking
    )
