from typing import Optional
from pydantic import BaseModel, Field


class CourseUrlRequest(BaseModel):
    course_id: str = Field(min_length=1, max_length=36)
    user_id: Optional[str] = None


class TelegramUser(BaseModel):
    id: int


class TelegramMessage(BaseModel):
    message_id: Optional[int] = None
    text: Optional[str] = None
    from_: Optional[TelegramUser] = Field(default=None, alias="from")


class TelegramUpdate(BaseModel):
    update_id: Optional[int] = None
    message: Optional[TelegramMessage] = None
