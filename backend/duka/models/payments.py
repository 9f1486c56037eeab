from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class MpesaCallback(db.Model):
    """
    STK push result as delivered by Safaricom, stored verbatim for audit.

    result_code 0 is success; anything else is a failure. Recording a callback
    never creates a sale or touches stock.
    """
    __tablename__ = "mpesa_callbacks"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    checkout_request_id = db.Column(db.String(128), nullable=True, index=True)
    result_code = db.Column(db.Integer, nullable=False)
    result_desc = db.Column(db.String(255), nullable=True)
    receipt_number = db.Column(db.String(64), nullable=True)
    amount = db.Column(db.Numeric(12, 2), nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)
    raw_payload = db.Column(db.Text, nullable=False)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def is_success(self) -> bool:
        return self.result_code == 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "checkout_request_id": self.checkout_request_id,
            "result_code": self.result_code,
            "result_desc": self.result_desc,
            "receipt_number": self.receipt_number,
            "amount": money_str(self.amount),
            "phone_number": self.phone_number,
            "is_success": self.is_success,
            "received_at": to_utc_z(self.received_at),
        }
