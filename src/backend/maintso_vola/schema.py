"""
Table definitions of the hosted Maintso Vola database.

Only the columns the services read or write are declared. ``geom`` is a
PostGIS geometry upstream; it is mapped as text so the same metadata can be
created on SQLite for local runs.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Integer, MetaData, String, Table, Text

USERS = "utilisateur"
ROLES = "role"
USER_ROLES = "utilisateurs_par_role"
CULTURES = "culture"
PROJECTS = "projet"
PROJECT_CULTURES = "projet_culture"
MILESTONES = "jalon_agricole"
PROJECT_MILESTONES = "jalon_projet"
INVESTMENTS = "investissement"
COSTS = "cout_jalon_projet"
PAYMENTS = "historique_paiement"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_user_id() -> str:
    return str(uuid.uuid4())


metadata = MetaData()

Table(
    USERS,
    metadata,
    Column("id_utilisateur", String(36), primary_key=True, default=_new_user_id),
    Column("nom", String(255), nullable=False),
    Column("prenoms", String(255)),
    Column("email", String(255)),
    Column("statut", String(32)),
    Column("created_at", DateTime(timezone=True), default=_utcnow, index=True),
)

Table(
    ROLES,
    metadata,
    Column("id_role", Integer, primary_key=True, autoincrement=True),
    Column("nom_role", String(64), nullable=False, unique=True),
    Column("description_role", Text),
    Column("created_at", DateTime(timezone=True), default=_utcnow),
)

Table(
    USER_ROLES,
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("id_utilisateur", String(36), ForeignKey(f"{USERS}.id_utilisateur"), nullable=False, index=True),
    Column("id_role", Integer, ForeignKey(f"{ROLES}.id_role"), nullable=False),
    Column("created_at", DateTime(timezone=True), default=_utcnow),
)

Table(
    CULTURES,
    metadata,
    Column("id_culture", Integer, primary_key=True, autoincrement=True),
    Column("nom_culture", String(255), nullable=False),
    Column("description", Text),
    Column("rendement_ha", Float),
    Column("cout_exploitation_ha", Float),
    Column("prix_tonne", Float),
    Column("created_at", DateTime(timezone=True), default=_utcnow),
    Column("modified_at", DateTime(timezone=True)),
)

Table(
    PROJECTS,
    metadata,
    Column("id_projet", Integer, primary_key=True, autoincrement=True),
    Column("titre", String(255)),
    Column("description", Text),
    Column("statut", String(32), index=True),
    Column("date_lancement", Date),
    Column("date_fin_prevue", Date),
    Column("surface_ha", Float),
    Column("budget_total", Float),
    Column("id_technicien", String(36)),
    Column("id_superviseur", String(36)),
    Column("id_tantsaha", String(36)),
    Column("id_commune", Integer),
    Column("id_district", Integer),
    Column("id_region", Integer),
    Column("geom", Text),
    Column("created_by", String(36)),
    Column("created_at", DateTime(timezone=True), default=_utcnow, index=True),
    Column("modified_at", DateTime(timezone=True)),
)

Table(
    PROJECT_CULTURES,
    metadata,
    Column("id_projet_culture", Integer, primary_key=True, autoincrement=True),
    Column("id_projet", Integer, ForeignKey(f"{PROJECTS}.id_projet"), index=True),
    Column("id_culture", Integer, ForeignKey(f"{CULTURES}.id_culture")),
    Column("rendement_previsionnel", Float),
    Column("rendement_reel", Float),
    Column("cout_exploitation_previsionnel", Float),
    Column("cout_exploitation_reel", Float),
    Column("created_by", String(36)),
    Column("created_at", DateTime(timezone=True), default=_utcnow),
)

Table(
    MILESTONES,
    metadata,
    Column("id_jalon", Integer, primary_key=True, autoincrement=True),
    Column("id_culture", Integer, ForeignKey(f"{CULTURES}.id_culture")),
    Column("nom_jalon", String(255), nullable=False),
    Column("action_a_faire", Text),
    Column("jours_apres_lancement", Integer),
)

Table(
    PROJECT_MILESTONES,
    metadata,
    Column("id_jalon_projet", Integer, primary_key=True, autoincrement=True),
    Column("id_projet", Integer, ForeignKey(f"{PROJECTS}.id_projet"), nullable=False, index=True),
    Column("id_jalon", Integer, ForeignKey(f"{MILESTONES}.id_jalon"), nullable=False),
    Column("statut", String(32), index=True),
    Column("date_prev_planifiee", Date),
    Column("date_reelle_execution", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True), default=_utcnow),
)

Table(
    INVESTMENTS,
    metadata,
    Column("id_investissement", Integer, primary_key=True, autoincrement=True),
    Column("id_projet", Integer, ForeignKey(f"{PROJECTS}.id_projet")),
    Column("id_investisseur", String(36)),
    Column("montant", Float, nullable=False),
    Column("date_paiement", Date),
    Column("created_at", DateTime(timezone=True), default=_utcnow),
)

Table(
    COSTS,
    metadata,
    Column("id_cout_projet", Integer, primary_key=True, autoincrement=True),
    Column("id_projet", Integer, ForeignKey(f"{PROJECTS}.id_projet"), nullable=False, index=True),
    Column("id_jalon_projet", Integer, ForeignKey(f"{PROJECT_MILESTONES}.id_jalon_projet")),
    Column("type_depense", String(128)),
    Column("montant_par_hectare", Float),
    Column("montant_total", Float, nullable=False),
    Column("statut_paiement", String(32)),
    Column("created_by", String(36)),
    Column("created_at", DateTime(timezone=True), default=_utcnow),
)

Table(
    PAYMENTS,
    metadata,
    Column("id_paiement", Integer, primary_key=True, autoincrement=True),
    Column("id_cout_projet", Integer, ForeignKey(f"{COSTS}.id_cout_projet"), nullable=False, index=True),
    Column("date_paiement", Date),
    Column("montant", Float, nullable=False),
    Column("methode_paiement", String(64)),
    Column("reference_transaction", String(128)),
    Column("created_by", String(36)),
    Column("created_at", DateTime(timezone=True), default=_utcnow),
)
