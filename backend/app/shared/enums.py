from __future__ import annotations

from enum import Enum


class Env(str, Enum):
    dev = "dev"
    prod = "prod"
    test = "test"


class Role(str, Enum):
    ADMIN = "ADMIN"
    OPERATIONS = "OPERATIONS"
    SALE = "SALE"
    GLAMPING_OWNER = "GLAMPING_OWNER"
    OWNER = "OWNER"
    CUSTOMER = "CUSTOMER"
