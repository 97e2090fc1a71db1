"""Team reference data."""

from __future__ import annotations

from typing import List, Tuple

from expenses import db
from expenses.models import Team

DEFAULT_TEAMS = (
    "COORDENAÇÃO GERAL",
    "CIRCULO",
    "SECRETARIA",
    "BANDINHA",
    "TRANSITO",
    "SOCIODRAMA",
    "COMPRAS",
    "EXTERNA 1",
    "EXTERNA 2",
    "COZINHA",
    "MERCADEJO",
    "LITURGIA E VIGILIA",
    "GARÇOM E LANCHE",
    "RECEPÇÃO E PALESTRA",
    "APRESENTADORES",
    "CORREIO INTERNO",
    "ORDEM E LIMPEZA",
    "BOA VONTADE",
    "MINI-BOX",
    "OUTROS CUSTO",
)


def seed_teams(names=DEFAULT_TEAMS) -> List[Team]:
    """Insert the teams from ``names`` that are missing and return them."""

    existing = {team.name for team in Team.query.all()}
    created = [Team(name=name) for name in names if name not in existing]
    if created:
        db.session.add_all(created)
        db.session.commit()
    return created


def team_choices() -> List[Tuple[int, str]]:
    return [(team.id, team.name) for team in Team.query.order_by(Team.name).all()]
