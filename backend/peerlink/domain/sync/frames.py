"""Wire frames exchanged over the sync channel."""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

SYNC_FRAME_TYPE = "sync"


class SyncFrame(BaseModel):
	"""``{"type": "sync", "docId": ..., "changes": [[int, ...], ...]}``

	Each change is one serialized delta spelled as a list of byte values.
	Changes are checked one at a time by ``to_delta`` so that a single bad
	change does not discard the rest of the frame.
	"""

	model_config = ConfigDict(populate_by_name=True, extra="ignore")

	type: Literal["sync"] = SYNC_FRAME_TYPE
	doc_id: str = Field(alias="docId", min_length=1)
	changes: list[Any] = Field(default_factory=list)


def to_delta(change: Any) -> Optional[bytes]:
	if not isinstance(change, list):
		return None
	if not all(isinstance(item, int) and not isinstance(item, bool) for item in change):
		return None
	try:
		return bytes(change)
	except ValueError:
		return None


def encode_sync_frame(doc_id: str, deltas: list[bytes]) -> str:
	frame = SyncFrame(doc_id=doc_id, changes=[list(delta) for delta in deltas])
	return frame.model_dump_json(by_alias=True)


def decode_frame(data: Union[str, bytes, bytearray]) -> Optional[SyncFrame]:
	"""Parse an inbound frame; ``None`` for anything that is not a sync frame."""
	try:
		raw = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
		return SyncFrame.model_validate_json(raw)
	except (ValidationError, UnicodeDecodeError, ValueError, TypeError):
		return None
