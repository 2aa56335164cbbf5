from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

from constants import DEFAULT_LANGUAGE


class WireModel(BaseModel):
    # Clients speak camelCase (fileId, activeFileId, ...)
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        # null fields are not applied by the store, so they are not echoed either
        return self.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)


class FileItem(WireModel):
    id: str = Field(min_length=1)
    name: str
    content: str = ""
    language: str = DEFAULT_LANGUAGE


class NoteItem(WireModel):
    id: str = Field(min_length=1)
    name: str
    content: str = ""


class FileUpdate(WireModel):
    file_id: str = Field(alias="fileId", min_length=1)
    content: Optional[str] = None
    language: Optional[str] = None


class FileRename(WireModel):
    file_id: str = Field(alias="fileId", min_length=1)
    name: str


class NoteUpdate(WireModel):
    note_id: str = Field(alias="noteId", min_length=1)
    content: Optional[str] = None


class NoteRename(WireModel):
    note_id: str = Field(alias="noteId", min_length=1)
    name: str


class RoomDocument(BaseModel):
    room_key: str
    files: list[FileItem]
    notes: list[NoteItem]
    active_file_id: Optional[str] = None
    active_note_id: Optional[str] = None
    created_at: str
    last_activity: str

    def sync_payload(self) -> dict:
        return {
            "files": [f.model_dump() for f in self.files],
            "notes": [n.model_dump() for n in self.notes],
            "activeFileId": self.active_file_id,
            "activeNoteId": self.active_note_id,
        }


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    rooms: int
    connections: int


class RoomDetailsResponse(WireModel):
    room_key: str = Field(alias="roomKey")
    file_count: int = Field(alias="fileCount")
    note_count: int = Field(alias="noteCount")
    user_count: int = Field(alias="userCount")
    max_users: int = Field(alias="maxUsers")
    created_at: str = Field(alias="createdAt")
    last_activity: str = Field(alias="lastActivity")
