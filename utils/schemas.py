"""
Request bodies accepted by the moderation API.

Bodies arrive in camelCase; attributes are snake_case. Anything that fails
validation here never reaches a service.
"""
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, model_validator

from models import FilterAction, FilterKind, ModerationActionType, ReportCategory, SanctionType


class RequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')


# -----------------
# Reports
# -----------------


class ReportCreate(RequestBody):
    content_id: str = Field(alias='contentId', min_length=1)
    category: ReportCategory
    reason: str = Field(min_length=1, max_length=1000)
    description: Optional[str] = Field(default=None, max_length=5000)


class ModerationActionSpec(RequestBody):
    action: ModerationActionType
    reason: Optional[str] = None


class SanctionSpec(RequestBody):
    sanction_type: SanctionType = Field(alias='sanctionType')
    reason: str = Field(min_length=1)
    duration: Optional[int] = None
    description: Optional[str] = None


class ReportReview(RequestBody):
    status: Literal['reviewed']
    resolution: str = Field(min_length=1)
    action: Optional[ModerationActionSpec] = None
    user_sanction: Optional[SanctionSpec] = Field(default=None, alias='userSanction')
    notes: Optional[str] = None


# -----------------
# Moderation actions
# -----------------


class ModerateRequest(RequestBody):
    content_id: str = Field(alias='contentId', min_length=1)
    action: ModerationActionType
    reason: Optional[str] = None


# -----------------
# Queue
# -----------------


class QueueQuery(RequestBody):
    priority: Optional[Literal['low', 'medium', 'high', 'urgent']] = None
    status: Optional[Literal['pending', 'in_review', 'resolved']] = None
    assigned_to: Optional[str] = Field(default=None, alias='assignedTo')
    discussion_id: Optional[str] = Field(default=None, alias='discussionId')
    page: int = Field(default=1, ge=1)
    per_page: Optional[int] = Field(default=None, alias='perPage', ge=1)


# -----------------
# Filters
# -----------------


class FilterRuleCreate(RequestBody):
    name: str = Field(min_length=1, max_length=120)
    description: str = ''
    kind: FilterKind
    keywords: Optional[List[str]] = None
    pattern: Optional[str] = None
    external_ref: Optional[str] = Field(default=None, alias='externalRef')
    action: FilterAction
    severity: Literal['low', 'medium', 'high'] = 'medium'
    confidence: float = Field(default=0.8, ge=0, le=1)
    apply_to_content: bool = Field(default=True, alias='applyToContent')
    apply_to_titles: bool = Field(default=True, alias='applyToTitles')
    apply_to_comments: bool = Field(default=True, alias='applyToComments')
    is_active: bool = Field(default=True, alias='isActive')
    is_test_mode: bool = Field(default=False, alias='isTestMode')

    @model_validator(mode='after')
    def check_payload_matches_kind(self):
        if self.kind == FilterKind.KEYWORD:
            keywords = [k.strip() for k in (self.keywords or []) if k and k.strip()]
            if not keywords:
                raise ValueError('keyword filters need at least one keyword')
            if self.pattern or self.external_ref:
                raise ValueError('keyword filters take only keywords')
            self.keywords = keywords
        elif self.kind == FilterKind.PATTERN:
            if not self.pattern:
                raise ValueError('pattern filters need a pattern')
            if self.keywords or self.external_ref:
                raise ValueError('pattern filters take only a pattern')
            try:
                re.compile(self.pattern)
            except re.error as e:
                raise ValueError(f'invalid pattern: {e}')
        else:
            if not self.external_ref:
                raise ValueError(f'{self.kind.value} filters need externalRef')
            if self.keywords or self.pattern:
                raise ValueError(f'{self.kind.value} filters take only externalRef')
        return self


class FilterRuleUpdate(RequestBody):
    """Partial update; fields left out keep their stored value."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    kind: Optional[FilterKind] = None
    keywords: Optional[List[str]] = None
    pattern: Optional[str] = None
    external_ref: Optional[str] = Field(default=None, alias='externalRef')
    action: Optional[FilterAction] = None
    severity: Optional[Literal['low', 'medium', 'high']] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    apply_to_content: Optional[bool] = Field(default=None, alias='applyToContent')
    apply_to_titles: Optional[bool] = Field(default=None, alias='applyToTitles')
    apply_to_comments: Optional[bool] = Field(default=None, alias='applyToComments')
    is_active: Optional[bool] = Field(default=None, alias='isActive')
    is_test_mode: Optional[bool] = Field(default=None, alias='isTestMode')


class FilterTest(RequestBody):
    content: str


class FilterFeedback(RequestBody):
    content_id: str = Field(alias='contentId', min_length=1)
    was_correct: StrictBool = Field(alias='wasCorrect')


class ContentCheck(RequestBody):
    content: str
    field: Optional[Literal['body', 'title', 'comment']] = None


# -----------------
# Sanctions
# -----------------


class SanctionCreate(RequestBody):
    user_id: str = Field(alias='userId', min_length=1)
    sanction_type: SanctionType = Field(alias='sanctionType')
    reason: str = Field(min_length=1)
    duration: Optional[int] = None
    description: Optional[str] = None
    related_content_id: Optional[str] = Field(default=None, alias='relatedContentId')
    related_report_id: Optional[str] = Field(default=None, alias='relatedReportId')


class SanctionRevoke(RequestBody):
    reason: str = Field(min_length=1)


class SanctionAppeal(RequestBody):
    appeal_reason: str = Field(alias='appealReason', min_length=1)


class AppealReview(RequestBody):
    decision: Literal['approved', 'denied']
    review_notes: Optional[str] = Field(default=None, alias='reviewNotes')
