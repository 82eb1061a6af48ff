"""Schema of the GitHub contents listing."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, TypeAdapter


class RemoteEntry(BaseModel):
    """One entry of a contents listing at the pinned revision."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    sha: str
    size: int
    git_url: str
    type: str = "file"


ListingAdapter = TypeAdapter(list[RemoteEntry])
