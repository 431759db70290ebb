from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


# Bio placeholders; the two must never be equal
ERROR_BIO = "Error fetching bio"
NO_BIO = "No bio found"

# Sheet store column names
COL_ID = "Id"
COL_PROJECT_NAME = "Project Name"
COL_CREATOR_NAME = "Creator Name"
COL_CREATOR_PROFILE = "Creator Profile"
COL_CREATOR_BIO = "Creator Bio"
COL_SCRAPED_AT = "Scraped At"


@dataclass
class CandidateRecord:
    project_name: Optional[str] = None
    creator_name: Optional[str] = None
    creator_profile_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectName": self.project_name,
            "creatorName": self.creator_name,
            "creatorProfileUrl": self.creator_profile_url,
        }


@dataclass
class EnrichedRecord(CandidateRecord):
    creator_bio: str = ERROR_BIO

    @classmethod
    def from_candidate(cls, candidate: CandidateRecord) -> "EnrichedRecord":
        return cls(**asdict(candidate))

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["creatorBio"] = self.creator_bio
        return data


@dataclass
class UploadResult:
    uploaded: int = 0
    error: Optional[str] = None


@dataclass
class RunResult:
    run_id: str
    message: str
    projects_scraped: int = 0
    uploaded: int = 0
    error: Optional[str] = None
    results: list[EnrichedRecord] = field(default_factory=list)
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "runId": self.run_id,
            "message": self.message,
            "projectsScraped": self.projects_scraped,
            "uploaded": self.uploaded,
        }
        if self.error:
            out["error"] = self.error
        if self.results:
            out["results"] = [r.to_dict() for r in self.results]
        return out
