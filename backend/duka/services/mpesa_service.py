# Overview: M-Pesa STK push initiation and callback recording.

"""
M-Pesa (Safaricom Daraja) integration

Initiation: an STK push request (/mpesa/stkpush/v1/processrequest) sent through MpesaGateway; the
response is only an acknowledgement. The real outcome arrives later as a
callback on /api/mpesa/callback.

Callbacks are stored verbatim. ResultCode 0 is success, anything else is a
failure. Payment confirmation and sale commit are decoupled: recording a
callback never creates a sale or moves stock.
"""

from __future__ import annotations

import base64
from decimal import ROUND_CEILING
import json
import re

import httpx
from flask import current_app

from ..errors import PaymentGatewayError
from ..extensions import db
from ..models import MpesaCallback
from ..time_utils import mpesa_timestamp, utcnow
from ..validation import ValidationError, require_positive_amount, to_decimal

PHONE_RE = re.compile(r"^(?:\+?254|0)?(7\d{8}|1\d{8})$")


def normalize_phone(phone: str | None) -> str:
    """Accept 07XXXXXXXX, 7XXXXXXXX, +2547XXXXXXXX; return 2547XXXXXXXX."""
    digits = re.sub(r"[\s-]", "", phone or "")
    match = PHONE_RE.match(digits)
    if not match:
        raise ValidationError("phone must be a Kenyan mobile number")
    return f"254{match.group(1)}"


class MpesaGateway:
    """Thin Daraja client. Pass a custom httpx transport in tests."""

    def __init__(
        self,
        *,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        shortcode: str,
        passkey: str,
        callback_url: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.shortcode = shortcode
        self.passkey = passkey
        self.callback_url = callback_url
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )
        self._credentials = (consumer_key, consumer_secret)

    @classmethod
    def from_config(cls, config, transport: httpx.BaseTransport | None = None) -> "MpesaGateway":
        required = ("MPESA_CONSUMER_KEY", "MPESA_CONSUMER_SECRET", "MPESA_PASSKEY", "MPESA_CALLBACK_URL")
        missing = [k for k in required if not config.get(k)]
        if missing:
            raise PaymentGatewayError("M-Pesa is not configured", details={"missing": missing})
        return cls(
            base_url=config["MPESA_BASE_URL"],
            consumer_key=config["MPESA_CONSUMER_KEY"],
            consumer_secret=config["MPESA_CONSUMER_SECRET"],
            shortcode=config["MPESA_SHORTCODE"],
            passkey=config["MPESA_PASSKEY"],
            callback_url=config["MPESA_CALLBACK_URL"],
            timeout=config.get("MPESA_TIMEOUT_SECONDS", 30.0),
            transport=transport,
        )

    def _access_token(self) -> str:
        response = self._client.get(
            "/oauth/v1/generate",
            params={"grant_type": "client_credentials"},
            auth=self._credentials,
        )
        response.raise_for_status()
        token = response.json().get("access_token")
        if not token:
            raise PaymentGatewayError("M-Pesa did not return an access token")
        return token

    def stk_push(self, *, phone: str, amount: int, account_reference: str, description: str) -> dict:
        timestamp = mpesa_timestamp(utcnow())
        password = base64.b64encode(f"{self.shortcode}{self.passkey}{timestamp}".encode()).decode()
        payload = {
            "BusinessShortCode": self.shortcode,
            "Password": password,
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": amount,
            "PartyA": phone,
            "PartyB": self.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": self.callback_url,
            "AccountReference": account_reference,
            "TransactionDesc": description,
        }
        try:
            token = self._access_token()
            response = self._client.post(
                "/mpesa/stkpush/v1/processrequest",
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise PaymentGatewayError("M-Pesa request failed", details={"cause": str(e)})
        return response.json()

    def close(self) -> None:
        self._client.close()


def _gateway() -> MpesaGateway:
    factory = current_app.extensions.get("mpesa_gateway_factory")
    if factory is not None:
        return factory()
    return MpesaGateway.from_config(current_app.config)


def initiate_stk_push(phone: str, amount, *, account_reference: str = "DUKA", description: str = "Shop payment") -> dict:
    """
    Ask Safaricom to prompt the customer's phone for payment.

    M-Pesa only takes whole shillings, so the amount is rounded up.
    Returns the gateway acknowledgement (MerchantRequestID, CheckoutRequestID, ...).
    """
    amount = require_positive_amount(amount)
    whole = int(amount.to_integral_value(rounding=ROUND_CEILING))
    msisdn = normalize_phone(phone)

    gateway = _gateway()
    try:
        ack = gateway.stk_push(
            phone=msisdn,
            amount=whole,
            account_reference=account_reference,
            description=description,
        )
    finally:
        gateway.close()

    current_app.logger.info(
        "STK push sent to %s for %s (checkout %s)", msisdn, whole, ack.get("CheckoutRequestID")
    )
    return ack


def _metadata_value(items: list, name: str):
    for item in items or []:
        if item.get("Name") == name:
            return item.get("Value")
    return None


def parse_stk_callback(body: dict) -> dict:
    """Pull the fields we keep out of a Daraja STK callback body."""
    try:
        result = body["Body"]["stkCallback"]
        result_code = int(result["ResultCode"])
    except (KeyError, TypeError, ValueError):
        raise ValidationError("Not an STK callback: Body.stkCallback.ResultCode missing")

    items = (result.get("CallbackMetadata") or {}).get("Item") or []
    amount = _metadata_value(items, "Amount")
    phone = _metadata_value(items, "PhoneNumber")
    receipt = _metadata_value(items, "MpesaReceiptNumber")

    return {
        "checkout_request_id": result.get("CheckoutRequestID"),
        "result_code": result_code,
        "result_desc": result.get("ResultDesc"),
        "receipt_number": str(receipt) if receipt is not None else None,
        "amount": to_decimal(amount, "Amount") if amount is not None else None,
        "phone_number": str(phone) if phone is not None else None,
    }


def record_callback(body: dict) -> MpesaCallback:
    fields = parse_stk_callback(body)
    callback = MpesaCallback(raw_payload=json.dumps(body, sort_keys=True), **fields)
    db.session.add(callback)
    db.session.commit()

    if callback.is_success:
        current_app.logger.info("M-Pesa payment %s confirmed", callback.receipt_number)
    else:
        current_app.logger.warning(
            "M-Pesa payment failed for checkout %s: %s", callback.checkout_request_id, callback.result_desc
        )
    return callback


def list_callbacks(checkout_request_id: str | None = None, limit: int = 50) -> list[MpesaCallback]:
    query = db.session.query(MpesaCallback)
    if checkout_request_id:
        query = query.filter_by(checkout_request_id=checkout_request_id)
    return query.order_by(MpesaCallback.id.desc()).limit(limit).all()
