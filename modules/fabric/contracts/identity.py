"""
Identity Domain Contracts.

RPC patterns served by the identity service. Credential issuance and
verification happen inside that service; only the wire shapes live here.

RPC contract map:
    auth.register   AuthRegisterRequestDTO  → AuthSessionTokensDTO
    auth.login      AuthLoginRequestDTO     → AuthSessionTokensDTO
    auth.refresh    AuthRefreshRequestDTO   → AuthTokensDTO
    auth.logout     AuthRefreshRequestDTO   → AuthLogoutResponseDTO
    auth.ping       EmptyPayload            → AuthPingResponseDTO
    users.findAll   UserListFiltersDTO      → list[UserDTO]
    users.findById  UserIdPayload           → UserDTO
"""

from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import Field

from modules.fabric.contracts.base import ContractModel, EmptyPayload
from modules.fabric.contracts.registry import ContractEntry, ContractRegistry

IDENTITY_DOMAIN = "identity"


class UserDTO(ContractModel):
    id: str
    email: str
    name: str


class AuthTokensDTO(ContractModel):
    access_token: str
    refresh_token: str


class AuthSessionTokensDTO(AuthTokensDTO):
    user: UserDTO


class AuthRegisterRequestDTO(ContractModel):
    email: str = Field(min_length=3)
    name: str = Field(min_length=1)
    password: str = Field(min_length=1)


class AuthLoginRequestDTO(ContractModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class AuthRefreshRequestDTO(ContractModel):
    refresh_token: str = Field(min_length=1)


class AuthLogoutResponseDTO(ContractModel):
    success: bool


class AuthPingResponseDTO(ContractModel):
    status: Literal["ok"] = "ok"
    ts: datetime


class UserListFiltersDTO(ContractModel):
    search: str | None = None


class UserIdPayload(ContractModel):
    id: str = Field(min_length=1)


class IdentityPattern(StrEnum):
    REGISTER = "auth.register"
    LOGIN = "auth.login"
    REFRESH = "auth.refresh"
    LOGOUT = "auth.logout"
    PING = "auth.ping"
    USERS_FIND_ALL = "users.findAll"
    USERS_FIND_BY_ID = "users.findById"


IDENTITY_CONTRACTS: tuple[ContractEntry, ...] = (
    ContractEntry(IdentityPattern.REGISTER, AuthRegisterRequestDTO, AuthSessionTokensDTO),
    ContractEntry(IdentityPattern.LOGIN, AuthLoginRequestDTO, AuthSessionTokensDTO),
    ContractEntry(IdentityPattern.REFRESH, AuthRefreshRequestDTO, AuthTokensDTO),
    ContractEntry(IdentityPattern.LOGOUT, AuthRefreshRequestDTO, AuthLogoutResponseDTO),
    ContractEntry(IdentityPattern.PING, EmptyPayload, AuthPingResponseDTO),
    ContractEntry(IdentityPattern.USERS_FIND_ALL, UserListFiltersDTO, list[UserDTO]),
    ContractEntry(IdentityPattern.USERS_FIND_BY_ID, UserIdPayload, UserDTO),
)


def build_identity_registry() -> ContractRegistry:
    """Frozen RPC registry for the identity domain."""
    return ContractRegistry.from_entries(IDENTITY_DOMAIN, IDENTITY_CONTRACTS)
