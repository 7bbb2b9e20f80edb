"""Tests for marketplace payment and supplier upgrade endpoints."""

import uuid
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import stripe
from httpx import AsyncClient
from sqlalchemy import func, select

from app.models.job import Invoice, Job
from app.models.payment import Payment


async def _payment_count(db_session) -> int:
    return (await db_session.execute(select(func.count()).select_from(Payment))).scalar_one()


def _intent(intent_id: str = "pi_api_1") -> SimpleNamespace:
    return SimpleNamespace(id=intent_id, client_secret=f"{intent_id}_secret_abc")


class TestCreateIntent:
    """Test POST /api/v1/payments/create-intent."""

    @pytest.mark.asyncio
    async def test_intent_for_supplier(
        self, client: AsyncClient, db_session, test_admin, auth_headers, make_condominium, make_supplier
    ):
        supplier = await make_supplier(await make_condominium(test_admin))
        with patch(
            "app.services.payment_service.create_payment_intent",
            new_callable=AsyncMock,
            return_value=_intent(),
        ) as mock_intent:
            response = await client.post(
                "/api/v1/payments/create-intent",
                json={"payee_id": str(supplier.id), "payee_type": "supplier", "amount": "100"},
                headers={**auth_headers, "Idempotency-Key": "pay-key-1"},
            )

        assert response.status_code == 201
        data = response.json()
        assert data["client_secret"] == "pi_api_1_secret_abc"
        assert data["checkout_url"] is None
        assert data["payment"]["status"] == "pending"
        assert data["payment"]["stripe_payment_id"] == "pi_api_1"
        assert Decimal(data["payment"]["amount"]) == Decimal("100.00")
        assert Decimal(data["fees"]["platform_fee"]) == Decimal("1.00")
        assert Decimal(data["fees"]["processor_fee"]) == Decimal("0.25")
        assert Decimal(data["fees"]["net"]) == Decimal("0.75")

        kwargs = mock_intent.call_args.kwargs
        assert kwargs["amount_cents"] == 10000
        assert kwargs["application_fee_cents"] == 100
        assert kwargs["destination_account_id"] == "acct_supplier_123"
        assert kwargs["customer_id"] == "cus_admin_123"
        assert kwargs["idempotency_key"] == "pay-key-1"
        assert await _payment_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_checkout_variant(
        self, client: AsyncClient, test_admin, auth_headers, make_condominium, make_supplier
    ):
        supplier = await make_supplier(await make_condominium(test_admin))
        with patch(
            "app.services.payment_service.create_payment_checkout_session",
            new_callable=AsyncMock,
            return_value=SimpleNamespace(id="cs_pay_1", url="https://checkout.stripe.com/c/pay/cs_pay_1"),
        ):
            response = await client.post(
                "/api/v1/payments/create-intent",
                json={
                    "payee_id": str(supplier.id),
                    "payee_type": "supplier",
                    "amount": "250.00",
                    "use_checkout": True,
                    "success_url": "https://app.test/ok",
                    "cancel_url": "https://app.test/ko",
                },
                headers=auth_headers,
            )

        assert response.status_code == 201
        data = response.json()
        assert data["checkout_url"] == "https://checkout.stripe.com/c/pay/cs_pay_1"
        assert data["client_secret"] is None
        assert data["payment"]["stripe_payment_id"] == "cs_pay_1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-5"])
    async def test_non_positive_amount(
        self, client: AsyncClient, db_session, test_admin, auth_headers, make_condominium, make_supplier, amount
    ):
        supplier = await make_supplier(await make_condominium(test_admin))
        with patch(
            "app.services.payment_service.create_payment_intent", new_callable=AsyncMock
        ) as mock_intent:
            response = await client.post(
                "/api/v1/payments/create-intent",
                json={"payee_id": str(supplier.id), "payee_type": "supplier", "amount": amount},
                headers=auth_headers,
            )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"
        mock_intent.assert_not_awaited()
        assert await _payment_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_payee_without_connected_account(
        self, client: AsyncClient, test_admin, auth_headers, make_condominium, make_supplier
    ):
        supplier = await make_supplier(await make_condominium(test_admin), stripe_connect_account_id=None)
        response = await client.post(
            "/api/v1/payments/create-intent",
            json={"payee_id": str(supplier.id), "payee_type": "supplier", "amount": "50"},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "CONFIG_ERROR"

    @pytest.mark.asyncio
    async def test_unknown_payee(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/v1/payments/create-intent",
            json={"payee_id": str(uuid.uuid4()), "payee_type": "admin", "amount": "50"},
            headers=auth_headers,
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_payee_type_rejected_by_schema(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/v1/payments/create-intent",
            json={"payee_id": str(uuid.uuid4()), "payee_type": "tenant", "amount": "50"},
            headers=auth_headers,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_stripe_error_is_502_and_nothing_recorded(
        self, client: AsyncClient, db_session, test_admin, auth_headers, make_condominium, make_supplier
    ):
        supplier = await make_supplier(await make_condominium(test_admin))
        with patch(
            "app.services.payment_service.create_payment_intent",
            new_callable=AsyncMock,
            side_effect=stripe.CardError("Your card was declined.", param=None, code="card_declined"),
        ):
            response = await client.post(
                "/api/v1/payments/create-intent",
                json={"payee_id": str(supplier.id), "payee_type": "supplier", "amount": "80"},
                headers=auth_headers,
            )

        assert response.status_code == 502
        assert response.json()["detail"]["message"] == "Your card was declined."
        assert await _payment_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/payments/create-intent",
            json={"payee_id": str(uuid.uuid4()), "payee_type": "admin", "amount": "50"},
        )
        assert response.status_code == 401


class TestPayInvoice:
    """Test POST /api/v1/invoices/{job_id}/pay."""

    @pytest.mark.asyncio
    async def test_pays_latest_unpaid_invoice(
        self, client: AsyncClient, db_session, test_admin, auth_headers, make_condominium, make_supplier
    ):
        condo = await make_condominium(test_admin)
        supplier = await make_supplier(condo)
        job = Job(
            admin_id=test_admin.id,
            supplier_id=supplier.id,
            condominium_id=condo.id,
            title="Sostituzione caldaia",
            status="completed",
        )
        db_session.add(job)
        await db_session.flush()
        invoice = Invoice(job_id=job.id, total=Decimal("450.00"), paid=False)
        db_session.add(invoice)
        await db_session.flush()

        with patch(
            "app.services.payment_service.create_payment_intent",
            new_callable=AsyncMock,
            return_value=_intent("pi_invoice"),
        ) as mock_intent:
            response = await client.post(f"/api/v1/invoices/{job.id}/pay", json={}, headers=auth_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["invoice_id"] == str(invoice.id)
        assert data["payment"]["payee_id"] == str(supplier.id)
        assert Decimal(data["payment"]["amount"]) == Decimal("450.00")
        assert mock_intent.call_args.kwargs["amount_cents"] == 45000
        assert invoice.stripe_payment_intent_id == "pi_invoice"

    @pytest.mark.asyncio
    async def test_second_pay_while_pending_rejected(
        self, client: AsyncClient, db_session, test_admin, auth_headers, make_condominium, make_supplier
    ):
        condo = await make_condominium(test_admin)
        supplier = await make_supplier(condo)
        job = Job(
            admin_id=test_admin.id,
            supplier_id=supplier.id,
            condominium_id=condo.id,
            title="Tinteggiatura scale",
            status="completed",
        )
        db_session.add(job)
        await db_session.flush()
        db_session.add(Invoice(job_id=job.id, total=Decimal("900.00"), paid=False))
        await db_session.flush()

        with patch(
            "app.services.payment_service.create_payment_intent",
            new_callable=AsyncMock,
            return_value=_intent("pi_once"),
        ) as mock_intent:
            first = await client.post(f"/api/v1/invoices/{job.id}/pay", json={}, headers=auth_headers)
            second = await client.post(f"/api/v1/invoices/{job.id}/pay", json={}, headers=auth_headers)

        assert first.status_code == 201
        assert second.status_code == 400
        assert second.json()["detail"]["code"] == "VALIDATION_ERROR"
        assert mock_intent.await_count == 1

    @pytest.mark.asyncio
    async def test_unknown_job(self, client: AsyncClient, auth_headers):
        response = await client.post(f"/api/v1/invoices/{uuid.uuid4()}/pay", json={}, headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOT_FOUND"


class TestSupplierUpgrade:
    """Test POST /api/v1/suppliers/upgrade."""

    @pytest.mark.asyncio
    async def test_owner_gets_checkout(self, client: AsyncClient, make_supplier, token_headers):
        owner_id = uuid.uuid4()
        supplier = await make_supplier(None, owner_id=owner_id, stripe_customer_id="cus_sup_1")
        with patch(
            "app.services.subscription_service.create_supplier_checkout_session",
            new_callable=AsyncMock,
            return_value=SimpleNamespace(id="cs_sup", url="https://checkout.stripe.com/c/pay/cs_sup"),
        ) as mock_session:
            response = await client.post(
                "/api/v1/suppliers/upgrade",
                json={
                    "supplier_id": str(supplier.id),
                    "success_url": "https://app.test/ok",
                    "cancel_url": "https://app.test/ko",
                },
                headers=token_headers(owner_id),
            )

        assert response.status_code == 200
        assert response.json()["checkout_url"] == "https://checkout.stripe.com/c/pay/cs_sup"
        assert mock_session.call_args.kwargs["customer_id"] == "cus_sup_1"
        assert mock_session.call_args.kwargs["supplier_id"] == str(supplier.id)

    @pytest.mark.asyncio
    async def test_other_account_forbidden(self, client: AsyncClient, make_supplier, token_headers):
        supplier = await make_supplier(None, owner_id=uuid.uuid4())
        response = await client.post(
            "/api/v1/suppliers/upgrade",
            json={"supplier_id": str(supplier.id), "success_url": "https://a", "cancel_url": "https://b"},
            headers=token_headers(uuid.uuid4()),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_supplier(self, client: AsyncClient, token_headers):
        response = await client.post(
            "/api/v1/suppliers/upgrade",
            json={"supplier_id": str(uuid.uuid4()), "success_url": "https://a", "cancel_url": "https://b"},
            headers=token_headers(uuid.uuid4()),
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_already_pro(self, client: AsyncClient, db_session, make_supplier, token_headers):
        owner_id = uuid.uuid4()
        supplier = await make_supplier(None, owner_id=owner_id, plan="pro")
        supplier.plan_status = "active"
        await db_session.flush()
        response = await client.post(
            "/api/v1/suppliers/upgrade",
            json={"supplier_id": str(supplier.id), "success_url": "https://a", "cancel_url": "https://b"},
            headers=token_headers(owner_id),
        )
        assert response.status_code == 400
