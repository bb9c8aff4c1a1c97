from __future__ import annotations

from app.domain.bookings.models.bank_accounts import BankAccount
from app.domain.bookings.models.camping import CampingBooking, CampingBookingPayment
from app.domain.bookings.models.glamping import GlampingBooking, GlampingBookingAdditionalCost, GlampingBookingPayment

__all__ = [
    "BankAccount",
    "CampingBooking",
    "CampingBookingPayment",
    "GlampingBooking",
    "GlampingBookingAdditionalCost",
    "GlampingBookingPayment",
]
