import pytest

from modules.orders.constants import PaymentMethod
from modules.payments.gateways import reset_gateways, set_gateway
from modules.payments.gateways.fake import FakeGateway


class TestHealthCheck:
    def test_health_check_returns_200(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert "services" in data

    def test_health_check_reports_database_status(self, client):
        response = client.get("/health")
        data = response.json()
        assert data["services"]["database"]["status"] == "up"
        assert "response_time_ms" in data["services"]["database"]

    def test_health_check_reports_cache_status(self, client):
        response = client.get("/health")
        data = response.json()
        assert data["services"]["cache"]["status"] == "up"
        assert "response_time_ms" in data["services"]["cache"]

    def test_health_check_reports_payment_gateways(self, client):
        data = client.get("/health").json()
        assert data["services"]["payment_gateways"] == {
            "RAZORPAY": {"status": "configured"},
            "STRIPE": {"status": "configured"},
        }

    @pytest.mark.usefixtures("_unconfigured_stripe")
    def test_unconfigured_gateway_keeps_probe_healthy(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        gateways = response.json()["services"]["payment_gateways"]
        assert gateways["STRIPE"] == {"status": "unavailable"}


@pytest.fixture()
def _unconfigured_stripe():
    set_gateway(PaymentMethod.STRIPE, FakeGateway(secret=""))
    yield
    reset_gateways()
