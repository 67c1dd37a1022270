"""Profile schema."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Profile(BaseModel):
    """Identity and endpoint bundle for one CloudAPI."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    name: str = Field(..., description="Profile name")
    url: str = Field(..., description="CloudAPI endpoint URL")
    account: str = Field(..., description="Account login name")
    act_as_account: Optional[str] = Field(
        None, alias="actAsAccount", description="Account to act as (operator only)"
    )
    user: Optional[str] = Field(None, description="RBAC sub-user login")
    key_id: str = Field(..., alias="keyId", description="SSH key fingerprint (MD5 or SHA256)")
    priv_key: Optional[str] = Field(
        None, alias="privKey", repr=False, description="Private key material"
    )
    insecure: bool = Field(False, description="Skip TLS certificate verification")
    accept_version: Optional[str] = Field(
        None, alias="acceptVersion", description="Accept-Version header value"
    )
    roles: list[str] = Field(default_factory=list, description="RBAC roles to assume")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("https://", "http://")):
            raise ValueError("url must start with https:// or http://")
        return v.rstrip("/")

    @field_validator("roles", mode="before")
    @classmethod
    def split_roles(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [r.strip() for r in v.split(",") if r.strip()]
        return v

    @property
    def path_account(self) -> str:
        """Account login that prefixes every request path."""
        return self.act_as_account or self.account
