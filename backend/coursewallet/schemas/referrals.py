from pydantic import BaseModel, ConfigDict, Field


class CourseCodeRequest(BaseModel):
    course_id: str = Field(min_length=1, max_length=36)


class ValidateCodeRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    referral_code: str = Field(min_length=1, max_length=32)
