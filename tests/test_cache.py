"""
Unit tests for the client-side patient cache.
"""

from clinic.cache import PatientCache


def test_refresh_loads_patients_and_counters(services, john):
    services.registry.set_charges(john.id, 50)
    services.registry.register({
        "name": "Jane Smith", "age": 28, "contact": "+1", "symptoms": "Cough",
    })
    cache = PatientCache(services.registry)
    assert cache.patients == [] and not cache.loaded

    cache.refresh()

    assert [p.token for p in cache.patients] == ["T001", "T002"]
    assert cache.waiting_count == 2
    assert cache.total_charges == 50
    assert cache.count_by_status() == {"Waiting": 2, "In Consultation": 0, "Completed": 0}


def test_cache_changes_only_at_refresh_points(services, john):
    cache = PatientCache(services.registry)
    cache.refresh()
    services.visits.start_consultation(john.id)
    assert cache.get(john.id).status.value == "Waiting"

    cache.refresh()
    assert cache.get(john.id).status.value == "In Consultation"


def test_apply_acknowledged_write(services, john):
    cache = PatientCache(services.registry)
    cache.refresh()
    cache.apply(services.visits.start_consultation(john.id))
    assert cache.count_by_status()["In Consultation"] == 1


def test_find_token(services, john):
    cache = PatientCache(services.registry)
    cache.refresh()
    assert cache.find_token(" t001 ") == cache.get(john.id)
    assert cache.find_token("T999") is None
