"""Pack (commercial tier) model."""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Pack(BaseModel):
    """Row limit and display metadata of a commercial tier."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    row_limit: int = Field(..., gt=0, description="Maximum number of rows in an export")
    price: Optional[float] = None
    currency: Optional[str] = None
    price_label: Optional[str] = None
    popular: bool = False
