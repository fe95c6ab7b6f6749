from datetime import date
from pathlib import Path

from conftest import make_repo

from petdash.domain.results import ServiceResult, service_boundary
from petdash.services.outlet_service import OutletService


def payload(**overrides) -> dict:
    data = {
        "name": "  Dog Center  ",
        "zone": "CABA",
        "frequency": "QUINCENAL",
        "business_type": "PET_SHOP_VETE",
        "has_freezer": True,
        "freezer_capacity": 120,
        "contact": {"phone": "1122223333", "email": "dog@center.com"},
    }
    data.update(overrides)
    return data


def test_create_and_get_outlet(tmp_path: Path):
    service = OutletService(make_repo(tmp_path))

    created = service.create_outlet(payload())
    assert created.success
    outlet = service.get_outlet(created.data.id).data

    assert outlet.name == "Dog Center"
    assert outlet.active
    assert outlet.monthly_kilos == ()
    assert outlet.contact.phone == "1122223333"


def test_invalid_zone_is_rejected(tmp_path: Path):
    result = OutletService(make_repo(tmp_path)).create_outlet(payload(zone="MARTE"))

    assert not result.success
    assert result.error == "Zona inválida: MARTE"


def test_missing_outlet_is_explicit_not_found(tmp_path: Path):
    service = OutletService(make_repo(tmp_path))

    assert service.get_outlet("missing").error == "Mayorista no encontrado"
    assert service.update_outlet("missing", {"notes": "x"}).error == "Mayorista no encontrado"
    assert service.delete_outlet("missing").error == "Mayorista no encontrado"


def test_update_rejects_unknown_fields(tmp_path: Path):
    service = OutletService(make_repo(tmp_path))
    oid = service.create_outlet(payload()).data.id

    result = service.update_outlet(oid, {"id": "other"})
    assert not result.success
    assert "id" in result.error

    updated = service.update_outlet(oid, {"notes": "Entrega martes", "zone": "SUR"}).data
    assert (updated.notes, updated.zone) == ("Entrega martes", "SUR")


def test_delete_is_soft_and_hides_from_active_list(tmp_path: Path):
    service = OutletService(make_repo(tmp_path))
    oid = service.create_outlet(payload()).data.id
    service.create_outlet(payload(name="Gatolandia", zone="OESTE"))

    assert service.delete_outlet(oid).success

    listed = service.list_outlets().data
    assert [o.name for o in listed["outlets"]] == ["Gatolandia"]
    assert service.get_outlet(oid).data.active is False
    assert service.list_outlets(active=None).data["total"] == 2


def test_search_matches_contact_phone(tmp_path: Path):
    service = OutletService(make_repo(tmp_path))
    service.create_outlet(payload())
    service.create_outlet(payload(name="Otro", contact={"phone": "999"}))

    found = service.list_outlets(search="2222").data
    assert [o.name for o in found["outlets"]] == ["Dog Center"]
    assert found["page_count"] == 1


def test_monthly_kilos_overwrite_and_zone_volume(tmp_path: Path):
    service = OutletService(make_repo(tmp_path))
    a = service.create_outlet(payload()).data.id
    b = service.create_outlet(payload(name="B")).data.id
    service.create_outlet(payload(name="C", zone="SUR"))

    service.add_monthly_kilos(a, 6, 2024, 100)
    service.add_monthly_kilos(a, 6, 2024, 150)
    service.add_monthly_kilos(b, 6, 2024, 50)

    assert len(service.get_outlet(a).data.monthly_kilos) == 1

    zones = {z.zone: z for z in service.sales_by_zone(date(2024, 6, 20)).data}
    assert zones["CABA"].total_outlets == 2
    assert zones["CABA"].total_kilos_current_month == 200
    assert zones["SUR"].total_kilos_current_month == 0


def test_negative_kilos_rejected(tmp_path: Path):
    service = OutletService(make_repo(tmp_path))
    oid = service.create_outlet(payload()).data.id

    result = service.add_monthly_kilos(oid, 1, 2024, -5)
    assert result.error == "Los kilos no pueden ser negativos."


def test_loosely_typed_inputs_come_back_as_results(tmp_path: Path):
    service = OutletService(make_repo(tmp_path))

    created = service.create_outlet(payload(name=123))
    assert created.success
    assert created.data.name == "123"

    listed = service.list_outlets(search=None)
    assert listed.success
    assert listed.data["total"] == 1


def test_unexpected_errors_are_reported_with_the_generic_message():
    class Exploding:
        @service_boundary("Error al obtener los mayoristas")
        def run(self):
            raise AttributeError("'NoneType' object has no attribute 'strip'")

    result = Exploding().run()

    assert isinstance(result, ServiceResult)
    assert not result.success
    assert result.error == "Error al obtener los mayoristas"
