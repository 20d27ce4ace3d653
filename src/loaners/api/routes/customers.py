"""Customer lookup endpoints."""

from fastapi import APIRouter, HTTPException, Path, Query

from loaners.infra.repositories import customers_repository

router = APIRouter(prefix="/customers", tags=["customers"])


@router.get("")
def list_customers() -> list[dict]:
    from loaners.infra.db import txn

    with txn() as cur:
        return customers_repository.list_customers(cur)


@router.get("/search")
def search_customers(
    q: str = Query(..., min_length=1, description="Name, email or phone fragment"),
) -> list[dict]:
    """Find customers for the reservation form's customer picker."""
    from loaners.infra.db import txn

    with txn() as cur:
        return customers_repository.search_customers(cur, q)


@router.get("/{customer_id}")
def get_customer(
    customer_id: str = Path(..., description="Customer ID"),
) -> dict:
    from loaners.infra.db import txn

    with txn() as cur:
        customer = customers_repository.get_customer(cur, customer_id)

    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer
