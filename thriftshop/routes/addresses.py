from __future__ import annotations

from typing import Any, Dict, List, Sequence

from fastapi import APIRouter, Depends, HTTPException
import psycopg

from ..db import db_unavailable, get_conn, schema_missing, ts
from ..models import AddressIn, AddressOut
from ..security import get_current_user
from ..validation import is_valid_uuid


router = APIRouter(prefix="/api/addresses", tags=["addresses"])

ADDRESS_COLUMNS = "id, name, phone, street, city, state, pincode, is_default, created_at"


def _address_from_row(r: Sequence) -> AddressOut:
    return AddressOut(
        id=str(r[0]),
        name=str(r[1]),
        phone=str(r[2]),
        street=str(r[3]),
        city=str(r[4]),
        state=str(r[5]),
        pincode=str(r[6]),
        is_default=bool(r[7]),
        created_at=ts(r[8]),
    )


def _clear_default(cur, user_id: str) -> None:
    cur.execute(
        "UPDATE thriftshop.addresses SET is_default = FALSE WHERE user_id = %s AND is_default;",
        (user_id,),
    )


@router.get("", response_model=List[AddressOut])
def list_addresses(user: Dict[str, Any] = Depends(get_current_user)) -> List[AddressOut]:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT {ADDRESS_COLUMNS}
                    FROM thriftshop.addresses
                    WHERE user_id = %s
                    ORDER BY is_default DESC, created_at DESC;
                    """,
                    (str(user["sub"]),),
                )
                rows = cur.fetchall()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.addresses")

    return [_address_from_row(r) for r in rows]


@router.post("", response_model=AddressOut, status_code=201)
def create_address(req: AddressIn, user: Dict[str, Any] = Depends(get_current_user)) -> AddressOut:
    user_id = str(user["sub"])
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT COUNT(*) FROM thriftshop.addresses WHERE user_id = %s;", (user_id,))
                first = int(cur.fetchone()[0]) == 0
                # The first address is always the default.
                is_default = req.is_default or first
                if is_default:
                    _clear_default(cur, user_id)
                cur.execute(
                    f"""
                    INSERT INTO thriftshop.addresses (user_id, name, phone, street, city, state, pincode, is_default)
                    VALUES (%s,%s,%s,%s,%s,%s,%s,%s)
                    RETURNING {ADDRESS_COLUMNS};
                    """,
                    (user_id, req.name, req.phone, req.street, req.city, req.state, req.pincode, is_default),
                )
                row = cur.fetchone()
            conn.commit()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.addresses")

    return _address_from_row(row)


@router.put("/{address_id}", response_model=AddressOut)
def update_address(
    address_id: str,
    req: AddressIn,
    user: Dict[str, Any] = Depends(get_current_user),
) -> AddressOut:
    if not is_valid_uuid(address_id):
        raise HTTPException(status_code=404, detail="Address not found")

    user_id = str(user["sub"])
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                if req.is_default:
                    _clear_default(cur, user_id)
                cur.execute(
                    f"""
                    UPDATE thriftshop.addresses
                    SET name = %s, phone = %s, street = %s, city = %s, state = %s, pincode = %s,
                        is_default = %s
                    WHERE id = %s AND user_id = %s
                    RETURNING {ADDRESS_COLUMNS};
                    """,
                    (
                        req.name,
                        req.phone,
                        req.street,
                        req.city,
                        req.state,
                        req.pincode,
                        req.is_default,
                        address_id,
                        user_id,
                    ),
                )
                row = cur.fetchone()
                if row is None:
                    raise HTTPException(status_code=404, detail="Address not found")
            conn.commit()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.addresses")

    return _address_from_row(row)


@router.delete("/{address_id}")
def delete_address(address_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    if not is_valid_uuid(address_id):
        raise HTTPException(status_code=404, detail="Address not found")

    user_id = str(user["sub"])
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM thriftshop.addresses WHERE id = %s AND user_id = %s RETURNING is_default;",
                    (address_id, user_id),
                )
                row = cur.fetchone()
                if row is None:
                    raise HTTPException(status_code=404, detail="Address not found")
                if bool(row[0]):
                    cur.execute(
                        """
                        UPDATE thriftshop.addresses SET is_default = TRUE
                        WHERE id = (
                            SELECT id FROM thriftshop.addresses
                            WHERE user_id = %s
                            ORDER BY created_at DESC
                            LIMIT 1
                        );
                        """,
                        (user_id,),
                    )
            conn.commit()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.addresses")

    return {"ok": True, "deleted_id": address_id}
