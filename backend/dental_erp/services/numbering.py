"""Sequential document numbers: PREFIX-YYYY-NNNNN"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession


async def next_number(db: AsyncSession, column, prefix: str, now: Optional[datetime] = None) -> str:
    """
    Next free number for ``column`` in the current year

    L-2026-00001, INV-2026-00001, PO-2026-00001 ... The sequence restarts
    every year.
    """
    year = (now or datetime.utcnow()).year
    pattern = f"{prefix}-{year}-%"
    # longest first so NNNNN rolls over to NNNNNN in numeric order
    result = await db.execute(
        select(column)
        .where(column.like(pattern))
        .order_by(func.length(column).desc(), column.desc())
        .limit(1)
    )
    max_no = result.scalar()

    if max_no:
        try:
            seq = int(max_no.rsplit("-", 1)[1]) + 1
        except ValueError:
            seq = 1
    else:
        seq = 1

    return f"{prefix}-{year}-{seq:05d}"
