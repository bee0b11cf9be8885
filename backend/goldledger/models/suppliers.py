from __future__ import annotations

from ..extensions import db
from goldledger.money_utils import round_money, round_weight
from goldledger.time_utils import to_utc_z

SUPPLIER_TYPES = ("miner", "trader", "refinery", "buyer", "other")
TRUST_LEVELS = ("new", "regular", "vip")
MOMO_PROVIDERS = ("MTN", "Vodafone", "AirtelTigo")


class Supplier(db.Model):
    """
    Counterparty the business trades gold with (miner, trader, refinery, buyer).

    BALANCE SIGN CONVENTION:
    - outstanding_balance > 0: supplier owes the business value in gold
      (an unsettled cash advance)
    - outstanding_balance < 0: the business owes the supplier money

    DERIVED TOTALS:
    total_transactions, total_weight_grams, total_amount_traded and
    outstanding_balance are written only by supplier_service's ledger
    functions, which are called from advance and transaction recording.
    Never assign them from request payloads.

    Suppliers are never hard-deleted; is_active is the soft-delete flag.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_type_active", "type", "is_active"),
        db.Index("ix_suppliers_balance", "outstanding_balance"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True, index=True)
    email = db.Column(db.String(255), nullable=True)
    location = db.Column(db.String(255), nullable=True)

    type = db.Column(db.String(16), nullable=False, default="miner")
    trust_level = db.Column(db.String(16), nullable=False, default="new", index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    total_transactions = db.Column(db.Integer, nullable=False, default=0)
    total_weight_grams = db.Column(db.Float, nullable=False, default=0.0)
    total_amount_traded = db.Column(db.Float, nullable=False, default=0.0)
    outstanding_balance = db.Column(db.Float, nullable=False, default=0.0)

    bank_name = db.Column(db.String(255), nullable=True)
    bank_account_number = db.Column(db.String(64), nullable=True)
    bank_account_name = db.Column(db.String(255), nullable=True)

    momo_provider = db.Column(db.String(32), nullable=True)
    momo_number = db.Column(db.String(64), nullable=True)
    momo_registered_name = db.Column(db.String(255), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    tags = db.Column(db.JSON, nullable=True)
    last_transaction_date = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def has_balance(self) -> bool:
        return bool(self.outstanding_balance)

    @property
    def balance_type(self) -> str:
        if self.outstanding_balance > 0:
            return "owes_gold"
        if self.outstanding_balance < 0:
            return "owes_money"
        return "settled"

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r} balance={self.outstanding_balance}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "location": self.location,
            "type": self.type,
            "trust_level": self.trust_level,
            "is_active": self.is_active,
            "total_transactions": self.total_transactions,
            "total_weight_grams": round_weight(self.total_weight_grams),
            "total_amount_traded": round_money(self.total_amount_traded),
            "outstanding_balance": round_money(self.outstanding_balance),
            "has_balance": self.has_balance,
            "balance_type": self.balance_type,
            "bank_details": {
                "bank_name": self.bank_name,
                "account_number": self.bank_account_number,
                "account_name": self.bank_account_name,
            },
            "momo_details": {
                "provider": self.momo_provider,
                "number": self.momo_number,
                "registered_name": self.momo_registered_name,
            },
            "notes": self.notes,
            "tags": self.tags or [],
            "last_transaction_date": to_utc_z(self.last_transaction_date),
            "created_by": self.created_by,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
