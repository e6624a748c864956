import json
import threading
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, List, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from persistence.crypto import CryptoUtils
from registry.identity import Identity
from registry.models import DocumentBundleRef, NewRegistration, PersonalInfo, ProductionDetail, Registration
from registry.store import RegistrationStore

IDENTITY_AAD = b"gi_registrations|identity"
PERSONAL_AAD = b"gi_registrations|personal_info"

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS gi_registrations (
        id BIGSERIAL PRIMARY KEY,
        aadhar_index TEXT,
        voter_index TEXT,
        identity_enc TEXT NOT NULL,
        personal_enc TEXT NOT NULL,
        category_ids INTEGER[] NOT NULL,
        existing_product_ids INTEGER[] NOT NULL,
        selected_product_ids INTEGER[] NOT NULL DEFAULT '{}',
        production_details JSONB NOT NULL DEFAULT '[]',
        documents JSONB NOT NULL DEFAULT '{}',
        base_registration_id BIGINT REFERENCES gi_registrations(id),
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE INDEX IF NOT EXISTS gi_registrations_aadhar_idx ON gi_registrations (aadhar_index)",
    "CREATE INDEX IF NOT EXISTS gi_registrations_voter_idx ON gi_registrations (voter_index)",
]

COLUMNS = """
    id, identity_enc, personal_enc, category_ids, existing_product_ids,
    selected_product_ids, production_details, documents, base_registration_id, created_at
"""


class PostgresRegistrationStore(RegistrationStore):
    """
    Registrations in PostgreSQL. Identity numbers and personal info are stored
    encrypted; aadhar/voter lookups go through HMAC blind indexes.

    ``serialized`` opens one transaction holding advisory locks for the identity
    keys; store calls made inside it on the same thread reuse that transaction.
    """

    def __init__(self, connect: Callable[[], psycopg.Connection], crypto: CryptoUtils):
        self._connect = connect
        self.crypto = crypto
        self._local = threading.local()

    def setup(self) -> None:
        with self._connect() as conn:
            for statement in SCHEMA:
                conn.execute(statement)

    @contextmanager
    def _connection(self) -> Iterator[psycopg.Connection]:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            yield conn
            return
        with self._connect() as conn:
            yield conn

    def _index(self, identity: Identity):
        aadhar = self.crypto.blind_index(identity.aadhar_number, "aadhar") if identity.aadhar_number else None
        voter = self.crypto.blind_index(identity.voter_id, "voter") if identity.voter_id else None
        return aadhar, voter

    def _to_registration(self, row: dict) -> Registration:
        identity = Identity.model_validate_json(self.crypto.decrypt_bytes(row["identity_enc"], IDENTITY_AAD))
        personal = PersonalInfo.model_validate_json(self.crypto.decrypt_bytes(row["personal_enc"], PERSONAL_AAD))
        return Registration(
            id=row["id"],
            identity=identity,
            personal_info=personal,
            category_ids=tuple(row["category_ids"]),
            existing_product_ids=tuple(row["existing_product_ids"]),
            selected_product_ids=tuple(row["selected_product_ids"] or ()),
            production_details=tuple(ProductionDetail.model_validate(d) for d in row["production_details"]),
            documents=DocumentBundleRef.model_validate(row["documents"]),
            base_registration_id=row["base_registration_id"],
            created_at=row["created_at"],
        )

    def find_matching(self, identity: Identity) -> List[Registration]:
        aadhar, voter = self._index(identity)
        clauses, params = [], []
        if aadhar:
            clauses.append("aadhar_index = %s")
            params.append(aadhar)
        if voter:
            clauses.append("voter_index = %s")
            params.append(voter)
        if not clauses:
            return []

        with self._connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {COLUMNS} FROM gi_registrations WHERE {' OR '.join(clauses)} ORDER BY created_at, id",
                    params,
                )
                rows = cur.fetchall()
        return [self._to_registration(r) for r in rows]

    def get(self, registration_id: int) -> Optional[Registration]:
        try:
            registration_id = int(registration_id)
        except (TypeError, ValueError):
            return None
        with self._connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {COLUMNS} FROM gi_registrations WHERE id = %s", (registration_id,))
                row = cur.fetchone()
        return self._to_registration(row) if row else None

    def insert(self, new: NewRegistration) -> Registration:
        aadhar, voter = self._index(new.identity)
        identity_enc = self.crypto.encrypt_bytes(new.identity.model_dump_json().encode("utf-8"), IDENTITY_AAD)
        personal_enc = self.crypto.encrypt_bytes(new.personal_info.model_dump_json().encode("utf-8"), PERSONAL_AAD)

        with self._connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    INSERT INTO gi_registrations (
                        aadhar_index, voter_index, identity_enc, personal_enc,
                        category_ids, existing_product_ids, selected_product_ids,
                        production_details, documents, base_registration_id
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING id, created_at
                    """,
                    (
                        aadhar,
                        voter,
                        identity_enc,
                        personal_enc,
                        list(new.category_ids),
                        list(new.existing_product_ids),
                        list(new.selected_product_ids),
                        Jsonb([json.loads(d.model_dump_json(by_alias=True)) for d in new.production_details]),
                        Jsonb(new.documents.as_slots()),
                        new.base_registration_id,
                    ),
                )
                row = cur.fetchone()
        return Registration(id=row["id"], created_at=row["created_at"], **dict(new))

    @contextmanager
    def serialized(self, keys: Iterable[str]) -> Iterator[None]:
        with self._connect() as conn:
            with conn.transaction():
                for key in sorted(set(keys)):
                    kind, _, value = key.partition(":")
                    conn.execute(
                        "SELECT pg_advisory_xact_lock(hashtextextended(%s, 0))",
                        (self.crypto.blind_index(value, kind),),
                    )
                self._local.conn = conn
                try:
                    yield
                finally:
                    self._local.conn = None
