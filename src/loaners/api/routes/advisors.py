"""Service advisor lookup endpoints."""

from fastapi import APIRouter, HTTPException, Path

from loaners.infra.repositories import advisors_repository

router = APIRouter(prefix="/advisors", tags=["advisors"])


@router.get("")
def list_advisors() -> list[dict]:
    from loaners.infra.db import txn

    with txn() as cur:
        return advisors_repository.list_advisors(cur)


@router.get("/{advisor_id}")
def get_advisor(
    advisor_id: str = Path(..., description="Advisor ID"),
) -> dict:
    from loaners.infra.db import txn

    with txn() as cur:
        advisor = advisors_repository.get_advisor(cur, advisor_id)

    if advisor is None:
        raise HTTPException(status_code=404, detail="Advisor not found")
    return advisor
