"""Thin resource call sites built on AqaraAPI.execute.

Each wrapper supplies an intent, a payload and optionally a result type;
signing, token handling and error mapping stay in the dispatcher.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Sequence, TypeVar

from .constants import (
    INTENT_CREATE_ACCOUNT, INTENT_DEVICE_INFO, INTENT_DEVICE_NAME, INTENT_DEVICE_SUB_INFO,
    INTENT_GET_AUTH_CODE, INTENT_GET_TOKEN, INTENT_POSITION_CREATE, INTENT_POSITION_DELETE,
    INTENT_POSITION_DETAIL, INTENT_POSITION_LIST, INTENT_REFRESH_TOKEN,
    INTENT_SCENE_LIST_BY_POSITION, INTENT_SCENE_RUN, INTENT_VOICE_COMMAND,
)
from .models import Envelope, IssuedToken

T = TypeVar("T")


# ==================== Result types ====================

@dataclass
class Position:
    position_id: str
    position_name: str = ""
    parent_position_id: str = ""
    description: str = ""
    create_time: Optional[int] = None

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Position":
        return cls(
            position_id=d["positionId"],
            position_name=d.get("positionName", ""),
            parent_position_id=d.get("parentPositionId", ""),
            description=d.get("description", ""),
            create_time=d.get("createTime"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "positionId": self.position_id,
            "positionName": self.position_name,
            "parentPositionId": self.parent_position_id,
            "description": self.description,
        }
        if self.create_time is not None:
            out["createTime"] = self.create_time
        return out


@dataclass
class Device:
    did: str
    device_name: str = ""
    model: str = ""
    position_id: str = ""
    parent_did: str = ""
    state: Optional[int] = None
    firmware_version: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Device":
        known = {"did", "deviceName", "model", "positionId", "parentDid", "state", "firmwareVersion"}
        return cls(
            did=d["did"],
            device_name=d.get("deviceName", ""),
            model=d.get("model", ""),
            position_id=d.get("positionId", ""),
            parent_did=d.get("parentDid", ""),
            state=d.get("state"),
            firmware_version=d.get("firmwareVersion", ""),
            extra={k: v for k, v in d.items() if k not in known},
        )


@dataclass
class Scene:
    scene_id: str
    name: str = ""

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Scene":
        return cls(scene_id=d["sceneId"], name=d.get("name", ""))


@dataclass
class Page(Generic[T]):
    """One page of a ``{"data": [...], "totalCount": n}`` result."""
    items: List[T]
    total_count: int

    def __iter__(self):
        return iter(self.items)

    def __len__(self):
        return len(self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": [i.to_dict() if hasattr(i, "to_dict") else i for i in self.items],
            "totalCount": self.total_count,
        }


def page_of(item_type: Callable[[Mapping[str, Any]], T], page_cls=None) -> Callable[[Any], Page[T]]:
    """Build a result converter for paged results."""
    page_cls = page_cls or Page

    def convert(raw: Any) -> Page[T]:
        if not isinstance(raw, Mapping):
            raise ValueError(f"expected a paged object, got {type(raw).__name__}")
        items = [item_type(d) for d in raw.get("data") or []]
        return page_cls(items=items, total_count=int(raw.get("totalCount", len(items))))
    return convert


class PositionPage(Page[Position]):

    @classmethod
    def from_dict(cls, raw: Any) -> "PositionPage":
        return page_of(Position.from_dict, cls)(raw)


def list_of(item_type: Callable[[Mapping[str, Any]], T]) -> Callable[[Any], List[T]]:
    def convert(raw: Any) -> List[T]:
        if not isinstance(raw, list):
            raise ValueError(f"expected a list, got {type(raw).__name__}")
        return [item_type(d) for d in raw]
    return convert


# ==================== Services ====================

class _Service:
    def __init__(self, client):
        self.client = client


class AuthService(_Service):
    """Account authorization intents (signed without an access token)."""

    def get_auth_code(self, account: str, account_type: int = 0,
                      access_token_validity: str = "7d") -> Envelope:
        return self.client.execute(INTENT_GET_AUTH_CODE, {
            "account": account,
            "accountType": account_type,
            "accessTokenValidity": access_token_validity,
        }, with_token=False)

    def get_token(self, auth_code: str, account: str, account_type: int = 0) -> Envelope[IssuedToken]:
        return self.client.execute(INTENT_GET_TOKEN, {
            "authCode": auth_code,
            "account": account,
            "accountType": account_type,
        }, IssuedToken.from_dict, require_result=True, with_token=False)

    def refresh_token(self, refresh_token: str) -> Envelope[IssuedToken]:
        return self.client.execute(
            INTENT_REFRESH_TOKEN, {"refreshToken": refresh_token},
            IssuedToken.from_dict, require_result=True, with_token=False,
        )

    def create_account(self, account_id: str, remark: Optional[str] = None,
                       need_access_token: Optional[bool] = None,
                       access_token_validity: Optional[str] = None) -> Envelope:
        data: Dict[str, Any] = {"accountId": account_id}
        if remark is not None:
            data["remark"] = remark
        if need_access_token is not None:
            data["needAccessToken"] = need_access_token
        if access_token_validity is not None:
            data["accessTokenValidity"] = access_token_validity
        return self.client.execute(INTENT_CREATE_ACCOUNT, data, with_token=False)


class PositionService(_Service):

    def list(self, parent_position_id: str = "", page_num: int = 1, page_size: int = 30) -> Envelope[PositionPage]:
        """``query.position.info``"""
        return self.client.execute(INTENT_POSITION_LIST, {
            "parentPositionId": parent_position_id,
            "pageNum": page_num,
            "pageSize": page_size,
        }, PositionPage.from_dict, require_result=True)

    def detail(self, position_ids: Sequence[str]) -> Envelope[List[Position]]:
        return self.client.execute(
            INTENT_POSITION_DETAIL, {"positionIds": list(position_ids)},
            list_of(Position.from_dict), require_result=True,
        )

    def create(self, position_name: str, description: Optional[str] = None,
               parent_position_id: Optional[str] = None) -> Envelope:
        data: Dict[str, Any] = {"positionName": position_name}
        if description is not None:
            data["description"] = description
        if parent_position_id is not None:
            data["parentPositionId"] = parent_position_id
        return self.client.execute(INTENT_POSITION_CREATE, data)

    def delete(self, position_id: str) -> Envelope:
        return self.client.execute(INTENT_POSITION_DELETE, {"positionId": position_id})


class DeviceService(_Service):

    def info(self, position_id: str = "", dids: Optional[Sequence[str]] = None,
             page_num: int = 1, page_size: int = 50) -> Envelope[Page[Device]]:
        """``query.device.info``"""
        data: Dict[str, Any] = {"positionId": position_id, "pageNum": page_num, "pageSize": page_size}
        if dids is not None:
            data["dids"] = list(dids)
        return self.client.execute(INTENT_DEVICE_INFO, data, page_of(Device.from_dict), require_result=True)

    def sub_info(self, gateway_did: str) -> Envelope[List[Device]]:
        return self.client.execute(
            INTENT_DEVICE_SUB_INFO, {"did": gateway_did},
            list_of(Device.from_dict), require_result=True,
        )

    def update_name(self, did: str, name: str) -> Envelope:
        return self.client.execute(INTENT_DEVICE_NAME, {"did": did, "name": name})


class SceneService(_Service):

    def list_by_position(self, position_id: str, page_num: int = 1, page_size: int = 30) -> Envelope[Page[Scene]]:
        return self.client.execute(INTENT_SCENE_LIST_BY_POSITION, {
            "positionId": position_id,
            "pageNum": page_num,
            "pageSize": page_size,
        }, page_of(Scene.from_dict), require_result=True)

    def run(self, scene_id: str) -> Envelope:
        return self.client.execute(INTENT_SCENE_RUN, {"sceneId": scene_id})


class VoiceService(_Service):

    def command(self, position_id: str, query_text: str) -> Envelope:
        """``command.device.resource``: natural-language device command."""
        return self.client.execute(INTENT_VOICE_COMMAND, {
            "positionId": position_id,
            "queryText": query_text,
        })
