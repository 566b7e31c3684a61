"""Backend endpoint URLs for the timetable and recorded-session screens.

Every URL is built from the configured API root and the caller's
SessionContext; nothing here reads global state.
"""

from datetime import date
from typing import Any
from urllib.parse import urlencode

from src.timetable.models import SessionContext

SUPERVISOR_FUNCTION_ID = 1


def _query(params: dict[str, Any], *, drop_empty: bool = False) -> str:
    if drop_empty:
        params = {k: v for k, v in params.items() if v is not None and v != ""}
    # HH:MM values go out unescaped
    return urlencode({k: "" if v is None else v for k, v in params.items()}, safe=":")


class ApiUrls:
    """URL builder for one user session.

    Args:
        base_url: API root ending with "/", e.g. "https://host/api/".
        context: School, academic year and user the requests are scoped to.
    """

    def __init__(self, base_url: str, context: SessionContext) -> None:
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self.context = context

    def _url(self, path: str, params: dict[str, Any] | None = None, **kwargs: Any) -> str:
        url = f"{self.base_url}{path}"
        if params:
            url = f"{url}?{_query(params, **kwargs)}"
        return url

    # Timetable activities

    def list_activites_by_ecole(self) -> str:
        return self._url(f"activite/list-by-ecole/{self.context.school_id}")

    def is_plage_horaire_valid(
        self, annee: int, classe: int, jour: int, heure_deb: str, heure_fin: str
    ) -> str:
        return self._url(
            "activite/is-plage-horaire-valid",
            {
                "annee": annee,
                "classe": classe,
                "jour": jour,
                "heureDeb": heure_deb,
                "heureFin": heure_fin,
            },
        )

    def get_salles_disponibles(
        self,
        annee: int,
        classe: int,
        jour: int,
        date_str: str,
        heure_deb: str,
        heure_fin: str,
    ) -> str:
        # date is always sent, empty when the slot is weekly
        return self._url(
            "salle/get-salles-dispo-heures",
            {
                "annee": annee,
                "classe": classe,
                "jour": jour,
                "date": date_str,
                "heureDeb": heure_deb,
                "heureFin": heure_fin,
            },
        )

    def get_activites_by_classe_jour(self, classe: int, jour: int) -> str:
        return self._url(
            "activite/list-by-classe-jour",
            {"annee": self.context.academic_year_id, "classe": classe, "jour": jour},
        )

    def save_activite(self) -> str:
        return self._url("activite/saveAndDisplay")

    def delete_activite(self, activite_id: int) -> str:
        return self._url(f"activite/{activite_id}")

    # Recorded sessions

    def get_salles_dispo_heures(
        self,
        annee: int | None,
        classe: int | None,
        jour: int | None,
        date_value: date | str | None,
        heure_deb: str | None,
        heure_fin: str | None,
    ) -> str:
        if isinstance(date_value, date):
            date_value = date_value.isoformat()
        return self._url(
            "salle/get-salles-dispo-heures",
            {
                "annee": annee,
                "classe": classe,
                "jour": jour,
                "date": date_value,
                "heureDeb": heure_deb,
                "heureFin": heure_fin,
            },
            drop_empty=True,
        )

    def save_seance(self) -> str:
        return self._url("seances/saveAndDisplay")

    def delete_seance(self, seance_id: int) -> str:
        return self._url(f"seances/delete/{seance_id}")

    def list_seances(self, statut: str = "MAN") -> str:
        return self._url(
            "seances/get-list-statut",
            {
                "annee": self.context.academic_year_id,
                "statut": statut,
                "ecole": self.context.school_id,
            },
        )

    # Reference data

    def list_classes(self) -> str:
        return self._url(
            "classes/get-classe-dto-by-user-type",
            {
                "annee": self.context.academic_year_id,
                "ecole": self.context.school_id,
                "personnel": self.context.personnel_id,
                "profil": self.context.profile_id,
            },
        )

    def list_jours(self) -> str:
        return self._url("jour/list")

    def list_types_activite(self) -> str:
        return self._url(f"type-activite/get-by-ecole/{self.context.school_id}")

    def list_matieres_by_classe(self, classe: int) -> str:
        return self._url("classe-matiere/get-by-branche-via-classe", {"classe": classe})

    def list_professeurs_by_classe(self, classe: int) -> str:
        return self._url(
            "personnel-matiere-classe/get-professeur-by-classe",
            {"classe": classe, "annee": self.context.academic_year_id},
        )

    def list_surveillants(self) -> str:
        return self._url(
            "personnels/get-by-fonction",
            {"fonction": SUPERVISOR_FUNCTION_ID, "ecole": self.context.school_id},
        )
