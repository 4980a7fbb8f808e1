from pydantic import BaseModel, ConfigDict, Field


class StudentCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str | None = None
    user_id: str | None = None


class StudentOut(StudentCreate):
    id: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class CFICreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str | None = None
    user_id: str | None = None


class CFIOut(CFICreate):
    id: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class AircraftCreate(BaseModel):
    tail_number: str = Field(..., min_length=1, max_length=20)
    model: str = Field(..., min_length=1, max_length=100)


class AircraftOut(AircraftCreate):
    id: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class ActiveUpdate(BaseModel):
    is_active: bool
