from pydantic import BaseModel
from typing import Dict, Any, List, Optional

from .access_token import AccessToken, Domain, FunctionCall


class DomainModel(BaseModel):
    name: str
    version: str
    chainId: int
    verifyingContract: str

    def to_domain(self) -> Domain:
        return Domain.from_dict(self.model_dump())


class FunctionCallModel(BaseModel):
    functionSignature: str
    target: str
    caller: str
    parameters: str

    def to_function_call(self) -> FunctionCall:
        return FunctionCall.from_dict(self.model_dump())


class AccessTokenModel(BaseModel):
    domain: Optional[DomainModel] = None
    functionCall: FunctionCallModel
    expiry: int
    v: int
    r: str
    s: str

    def to_token(self) -> AccessToken:
        return AccessToken.from_dict(self.model_dump(exclude={"domain"}))


class VerifyRequest(BaseModel):
    token: AccessTokenModel
    expectedCall: Optional[FunctionCallModel] = None


class VerifyResponse(BaseModel):
    valid: bool
    outcome: str
    signer: Optional[str] = None
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class IssuersResponse(BaseModel):
    rootAuthority: str
    intermediateAuthority: str
    activeIssuers: List[str]
    version: int
