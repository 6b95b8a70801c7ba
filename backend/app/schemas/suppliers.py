from pydantic import BaseModel


class SupplierRead(BaseModel):
    id: int
    name: str
    nit: str | None
    phone: str | None
    active: bool

    class Config:
        from_attributes = True
