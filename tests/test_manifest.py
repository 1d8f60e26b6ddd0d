"""Tests for transport manifests."""

import json
from datetime import datetime, timedelta

import pytest

from freightmesh.core.errors import NotFoundError, StateConflictError
from freightmesh.core.models.domain import DeliveryStatus
from freightmesh.services.manifest import (
    DocumentExporter,
    ManifestBuilder,
    generate_bill_no,
    validity_days,
)

from helpers import (
    make_delivery,
    make_driver,
    make_opportunity,
    make_route,
    make_truck,
    two_route_fleet,
)


class TestValidity:
    """Test validity period rules."""

    @pytest.mark.parametrize(
        "distance,days",
        [(0.0, 1), (150.0, 1), (200.0, 1), (201.0, 2), (450.0, 3), (None, 1)],
    )
    def test_one_day_per_200_km(self, distance, days):
        assert validity_days(distance) == days

    def test_bill_number_is_12_digits(self):
        for _ in range(20):
            bill_no = generate_bill_no()
            assert len(bill_no) == 12
            assert bill_no.isdigit()
            assert not bill_no.startswith("0")


class TestBuild:
    """Test manifest contents for one truck."""

    def test_goods_and_validity(self, manifests):
        now = datetime(2025, 3, 1, 9, 0)
        driver = make_driver("DRV_1", name="Ramesh", home_base_city="Mumbai")
        truck = make_truck("TRK_1", license_plate="MH04AB1234")
        deliveries = [
            make_delivery("D1", cargo_type="FOOD", package_count=40, base_earnings=4200, distance_km=160.0,
                          drop_location="Pune"),
            make_delivery("D2", cargo_type="PHARMA", package_count=5, base_earnings=99.5, distance_km=150.0),
        ]

        manifest = manifests.build(driver, truck, deliveries, now=now)

        assert manifest.generated_by == "Ramesh"
        assert manifest.vehicle_no == "MH04AB1234"
        assert manifest.dispatch_place == "Mumbai"
        assert manifest.delivery_place == "Pune"
        assert manifest.total_distance_km == 310.0
        assert manifest.valid_from == now
        assert manifest.valid_until == now + timedelta(days=2)
        assert manifest.document_no.startswith("DOC-")
        assert [(g.product_name, g.quantity, g.unit, g.value) for g in manifest.goods] == [
            ("FOOD", 40, "NOS", "4200.00"),
            ("PHARMA", 5, "NOS", "99.50"),
        ]

    def test_empty_truck_defaults(self, manifests):
        manifest = manifests.build(make_driver("DRV_1"), make_truck("TRK_1"), [])

        assert manifest.goods == []
        assert manifest.delivery_place == "Final Destination"
        assert manifest.dispatch_place == "Origin Hub"
        assert (manifest.valid_until - manifest.valid_from).days == 1

    def test_export_uses_injected_exporter(self, session_factory, settings):
        class RecordingExporter(DocumentExporter):
            def __init__(self):
                self.exported = []

            def export(self, manifest):
                self.exported.append(manifest.bill_no)
                return b"%PDF"

        exporter = RecordingExporter()
        builder = ManifestBuilder(session_factory, exporter, settings)
        manifest = builder.build(make_driver("DRV_1"), make_truck("TRK_1"), [])

        assert builder.export(manifest) == b"%PDF"
        assert exporter.exported == [manifest.bill_no]

    def test_default_export_is_json(self, manifests):
        manifest = manifests.build(make_driver("DRV_1"), make_truck("TRK_1"), [make_delivery("D1")])

        payload = json.loads(manifests.export(manifest))

        assert payload["bill_no"] == manifest.bill_no
        assert payload["goods"][0]["unit"] == "NOS"


class TestAbsorptionManifests:
    """Test the freed/absorbing manifest pair."""

    async def test_pair_after_handshake(self, ledger, manifests, seed):
        await seed(*two_route_fleet(50.0, 20.0), make_opportunity("OPP_1"))
        await ledger.handshake("OPP_1")

        freed, absorbing = await manifests.absorption_manifests("OPP_1")

        assert freed.vehicle_no == "MH-TRK_2"
        assert freed.goods == []
        assert absorbing.vehicle_no == "MH-TRK_1"
        assert absorbing.generated_by == "Driver DRV_1"
        assert len(absorbing.goods) == 3

    async def test_route2_absorbs(self, ledger, manifests, seed):
        await seed(*two_route_fleet(10.0, 40.0), make_opportunity("OPP_1"))
        await ledger.handshake("OPP_1")

        freed, absorbing = await manifests.absorption_manifests("OPP_1")

        assert freed.vehicle_no == "MH-TRK_1"
        assert absorbing.vehicle_no == "MH-TRK_2"
        assert len(absorbing.goods) == 3

    async def test_shared_driver_follows_winning_route(self, ledger, manifests, seed):
        """Test the absorbing truck is found by route when one driver runs both routes."""
        await seed(
            make_driver("DRV_1", distance=30.0),
            make_truck("TRK_1", owner_id="DRV_1"),
            make_truck("TRK_2", owner_id="DRV_1"),
            make_route("RTE_1", "TRK_1", "DRV_1"),
            make_route("RTE_2", "TRK_2", "DRV_1"),
            make_delivery("DEL_1", truck_id="TRK_1", driver_id="DRV_1", route_id="RTE_1",
                          status=DeliveryStatus.IN_TRANSIT),
            make_delivery("DEL_2", truck_id="TRK_2", driver_id="DRV_1", route_id="RTE_2",
                          status=DeliveryStatus.IN_TRANSIT),
            make_opportunity("OPP_1"),
        )
        result = await ledger.handshake("OPP_1")
        assert result.winning_route_id == "RTE_1"

        freed, absorbing = await manifests.absorption_manifests("OPP_1")

        assert absorbing.vehicle_no == "MH-TRK_1"
        assert len(absorbing.goods) == 2
        assert freed.vehicle_no == "MH-TRK_2"
        assert freed.goods == []

    async def test_requires_completed_opportunity(self, manifests, seed):
        await seed(*two_route_fleet(50.0, 20.0), make_opportunity("OPP_1"))

        with pytest.raises(StateConflictError):
            await manifests.absorption_manifests("OPP_1")

    async def test_unknown_opportunity(self, manifests):
        with pytest.raises(NotFoundError):
            await manifests.absorption_manifests("OPP_404")
