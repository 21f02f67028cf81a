"""
conftest.py — Shared pytest fixtures for the DUPA estimator test suite.

No database or external service fixtures are defined here. Engine and service
tests run against the in-memory repositories, seeded with one location's
master rates, two projects and one DUPA template.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``dupa_estimator.*`` imports resolve correctly regardless of where pytest
    is invoked.
"""

import sys
import os
from datetime import date
from types import SimpleNamespace

import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any package imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------------

@pytest.fixture
def master_data():
    """
    Master rates effective 2024-01-01.

    Labor (Malaybalay City):   foreman 129.83, labor_unskilled 72.55, ...
    Equipment:                 EQ-001 hourly 1200
                               EQ-002 rental 9600/day, no hourly rate
                               EQ-003 no rate at all
    Materials:                 CEM-001 catalog 250, Malaybalay City 265 (no hauling)
                               AGG-001 catalog 1000 (hauled)
    """
    from dupa_estimator.models.domain import EquipmentRate, LaborRate, MaterialPrice
    from dupa_estimator.repositories.memory import InMemoryMasterDataRepository

    repo = InMemoryMasterDataRepository()
    repo.add_labor_rate(LaborRate(
        location="Malaybalay City",
        district="Bukidnon 1st",
        rates={
            "foreman": 129.83,
            "leadman": 119.23,
            "equipment_operator_heavy": 108.41,
            "equipment_operator_high_skilled": 101.35,
            "equipment_operator_light_skilled": 94.06,
            "driver": 94.06,
            "labor_skilled": 94.06,
            "labor_semi_skilled": 86.9,
            "labor_unskilled": 72.55,
        },
        effective_date=date(2024, 1, 1),
    ))
    repo.add_equipment_rate(EquipmentRate(
        equipment_id="EQ-001", description="Backhoe 0.8 cu.m.",
        hourly_rate=1200.0, effective_date=date(2024, 1, 1),
    ))
    repo.add_equipment_rate(EquipmentRate(
        equipment_id="EQ-002", description="Concrete Mixer 1 bagger",
        rental_rate=9600.0, effective_date=date(2024, 1, 1),
    ))
    repo.add_equipment_rate(EquipmentRate(
        equipment_id="EQ-003", description="Unpriced roller",
        effective_date=date(2024, 1, 1),
    ))
    repo.add_material_price(MaterialPrice(
        material_code="CEM-001", description="Portland Cement", unit="bag",
        base_price=250.0, effective_date=date(2024, 1, 1),
    ))
    repo.add_material_price(MaterialPrice(
        material_code="CEM-001", description="Portland Cement", unit="bag",
        base_price=265.0, location="Malaybalay City",
        effective_date=date(2024, 1, 1), include_hauling=False,
    ))
    repo.add_material_price(MaterialPrice(
        material_code="AGG-001", description="Gravel", unit="cu.m.",
        base_price=1000.0, effective_date=date(2024, 1, 1),
    ))
    return repo


# ---------------------------------------------------------------------------
# Template / projects
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_template():
    """
    Labor:      Foreman 1 × 8 h, Unskilled Labor 4 × 8 h
    Equipment:  EQ-001 1 unit × 8 h, Minor Tools (10 % of labor)
    Materials:  CEM-001 10 bags, AGG-001 2 cu.m.
    Add-ons:    OCM 15 %, CP 10 %, VAT 12 %
    """
    from dupa_estimator.models.domain import Template
    return Template(
        id="tpl-801",
        pay_item_number="801(1)",
        pay_item_description="Removal of Structures and Obstruction",
        unit_of_measurement="l.s.",
        output_per_hour=1.0,
        labor_template=[
            {"designation": "Foreman", "no_of_persons": 1, "no_of_hours": 8},
            {"designation": "Unskilled Labor", "no_of_persons": 4, "no_of_hours": 8},
        ],
        equipment_template=[
            {"equipment_id": "EQ-001", "description": "Backhoe", "no_of_units": 1, "no_of_hours": 8},
            {"description": "Minor Tools (10% of Labor Cost)", "no_of_units": 1, "no_of_hours": 8},
        ],
        material_template=[
            {"material_code": "CEM-001", "description": "Portland Cement", "unit": "bag", "quantity": 10},
            {"material_code": "AGG-001", "description": "Gravel", "unit": "cu.m.", "quantity": 2},
        ],
        category="Part C - Earthworks",
    )


@pytest.fixture
def project():
    """Project in Malaybalay City next to the district office (no hauling)."""
    from dupa_estimator.models.domain import Project
    return Project(id="prj-001", name="Sayre Highway Widening", location="Malaybalay City",
                   district="Bukidnon 1st")


@pytest.fixture
def hauled_project():
    """Project 13 km from the district office: default dump-truck hauling config."""
    from dupa_estimator.models.domain import Project
    return Project(id="prj-002", name="Barangay Road Concreting", location="Malaybalay City",
                   district="Bukidnon 1st", distance_from_office_km=13.0)


@pytest.fixture
def repos(master_data, sample_template, project, hauled_project):
    """All four repositories, seeded, as one namespace."""
    from dupa_estimator.repositories.memory import (
        InMemoryBOQRepository,
        InMemoryProjectRepository,
        InMemoryTemplateRepository,
    )
    return SimpleNamespace(
        templates=InMemoryTemplateRepository([sample_template]),
        master_data=master_data,
        projects=InMemoryProjectRepository([project, hauled_project]),
        boq=InMemoryBOQRepository(),
    )


@pytest.fixture
def engine(repos):
    """InstantiationEngine wired to the seeded in-memory repositories."""
    from dupa_estimator.services.instantiation_engine import InstantiationEngine
    return InstantiationEngine(
        templates=repos.templates,
        master_data=repos.master_data,
        projects=repos.projects,
        boq=repos.boq,
    )
