"""Blocking HTTP client for the timetable endpoints of the school REST API.

TimetableApi turns every transport failure into the errors.py hierarchy so
callers only ever catch TimetableError subclasses. The async workflow runs
these methods with asyncio.to_thread.
"""

from collections.abc import Callable
from typing import Any, TypeVar

import pydantic
import requests

from src.timetable.cache import ResponseCache
from src.timetable.config import TimetableConfig
from src.timetable.errors import NetworkError, RequestError, SubmissionError
from src.timetable.logging import get_logger
from src.timetable.models import Activity, Reference, Room, SessionContext, strip_utc_marker
from src.timetable.urls import ApiUrls

logger = get_logger(__name__)

# Day ids above 6 (Sunday) are never offered in the timetable
LAST_TEACHING_DAY_ID = 6

JOURS_CACHE_KEY = "jours-list"

T = TypeVar("T")


def activities_cache_key(class_id: int, day_id: int) -> str:
    return f"activites-{class_id}-{day_id}"


def _person(record: dict[str, Any]) -> Reference:
    full_name = f"{record.get('prenom') or ''} {record.get('nom') or ''}".strip()
    return Reference.model_validate({**record, "libelle": record.get("libelle") or full_name})


# class-scoped listings wrap the entity in a join record
def _subject(item: dict[str, Any]) -> Reference | None:
    return Reference.model_validate(item["matiere"]) if item.get("matiere") else None


def _teacher(item: dict[str, Any]) -> Reference | None:
    return _person(item["personnel"]) if item.get("personnel") else None


class TimetableApi:
    """Client for one user session.

    Args:
        config: Backend URL, timeout and cache durations.
        context: School, academic year and user the requests are scoped to.
        session: Optional preconfigured requests.Session (auth headers, adapters).
        cache: Optional shared ResponseCache.
    """

    def __init__(
        self,
        config: TimetableConfig,
        context: SessionContext,
        session: requests.Session | None = None,
        cache: ResponseCache | None = None,
    ) -> None:
        self.config = config
        self.context = context
        self.urls = ApiUrls(config.api_base_url, context)
        self.session = session if session is not None else requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        self.cache = cache if cache is not None else ResponseCache()

    def _request(
        self,
        method: str,
        url: str,
        *,
        json_body: dict[str, Any] | None = None,
        submission: bool = False,
    ) -> Any:
        """Send one request and decode its JSON body.

        Raises:
            NetworkError: If the server could not be reached.
            SubmissionError: If a write (submission=True) was rejected.
            RequestError: For any other failed request or undecodable body.
        """
        logger.debug("request_sent", method=method, url=url)
        try:
            response = self.session.request(
                method,
                url,
                json=json_body,
                timeout=self.config.request_timeout_seconds,
            )
            response.raise_for_status()
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning("request_unreachable", method=method, url=url, error=str(e))
            raise NetworkError() from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            logger.warning(
                "request_rejected",
                method=method,
                url=url,
                status=status,
                body=e.response.text if e.response is not None else None,
            )
            if submission:
                raise SubmissionError.from_status(status) from e
            raise RequestError(
                f"{method} {url} failed with status {status}", status_code=status
            ) from e
        except requests.RequestException as e:
            logger.error("request_failed", method=method, url=url, error=str(e))
            raise RequestError(f"{method} {url} failed: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RequestError(f"{method} {url} returned invalid JSON") from e

    def _get(self, url: str) -> Any:
        return self._request("GET", url)

    def _get_list(self, url: str, parse: Callable[[Any], T]) -> list[T]:
        """GET a JSON array and parse each record.

        Raises:
            RequestError: If a record does not have the expected shape.
        """
        data = self._get(url)
        try:
            return [parse(record) for record in data or []]
        except (pydantic.ValidationError, KeyError, TypeError, AttributeError) as e:
            logger.warning("response_unexpected", url=url, error=str(e))
            raise RequestError(f"GET {url} returned an unexpected payload") from e

    # Slot availability

    def is_plage_horaire_valid(
        self, academic_year_id: int, class_id: int, day_id: int, start: str, end: str
    ) -> bool:
        """Ask whether a weekly slot is free for a class (boolean contract)."""
        data = self._get(
            self.urls.is_plage_horaire_valid(academic_year_id, class_id, day_id, start, end)
        )
        return bool(data)

    def get_salles_disponibles(
        self,
        academic_year_id: int,
        class_id: int,
        day_id: int,
        start: str,
        end: str,
        date_str: str = "",
    ) -> list[Room]:
        return self._get_list(
            self.urls.get_salles_disponibles(
                academic_year_id, class_id, day_id, date_str, start, end
            ),
            Room.model_validate,
        )

    def get_salles_dispo_heures(
        self,
        academic_year_id: int | None,
        class_id: int | None,
        day_id: int | None,
        start: str | None,
        end: str | None,
        slot_date: Any = None,
    ) -> list[Room]:
        """Rooms free for a slot; an empty list means the slot is taken (room-list contract)."""
        return self._get_list(
            self.urls.get_salles_dispo_heures(
                academic_year_id, class_id, day_id, slot_date, start, end
            ),
            Room.model_validate,
        )

    # Timetable activities

    def list_activites_by_ecole(self) -> list[Activity]:
        return self._get_list(self.urls.list_activites_by_ecole(), Activity.from_backend)

    def get_activites_by_classe_jour(
        self, class_id: int, day_id: int, *, use_cache: bool = True
    ) -> list[Activity]:
        """Activities already booked for a class on a day, ordered by start time."""
        key = activities_cache_key(class_id, day_id)
        if use_cache:
            cached = self.cache.get(key, self.config.activities_cache_seconds)
            if cached is not None:
                return cached

        activities = sorted(
            self._get_list(
                self.urls.get_activites_by_classe_jour(class_id, day_id),
                Activity.from_backend,
            ),
            key=lambda activity: activity.start_time,
        )
        self.cache.set(key, activities)
        return activities

    def clear_class_cache(self, class_id: int) -> None:
        for day_id in range(1, LAST_TEACHING_DAY_ID + 1):
            self.cache.discard(activities_cache_key(class_id, day_id))

    def save_activite(self, payload: dict[str, Any]) -> Any:
        """Create or update an activity (update when payload carries an id)."""
        data = self._request(
            "POST", self.urls.save_activite(), json_body=payload, submission=True
        )
        class_id = (payload.get("classe") or {}).get("id")
        if class_id is not None:
            self.clear_class_cache(class_id)
        logger.info("activity_saved", activity_id=payload.get("id"), class_id=class_id)
        return data

    def delete_activite(self, activite_id: int, class_id: int | None = None) -> Any:
        data = self._request(
            "DELETE", self.urls.delete_activite(activite_id), submission=True
        )
        if class_id is not None:
            self.clear_class_cache(class_id)
        logger.info("activity_deleted", activity_id=activite_id)
        return data

    # Recorded sessions

    def list_seances(self, statut: str = "MAN") -> list[dict[str, Any]]:
        data = self._get(self.urls.list_seances(statut))
        if data is None:
            return []
        records = data if isinstance(data, list) else [data]
        seances = []
        for record in records:
            record = dict(record)
            if isinstance(record.get("dateSeance"), str):
                record["dateSeance"] = strip_utc_marker(record["dateSeance"])
            seances.append(record)
        return seances

    def save_seance(self, payload: dict[str, Any]) -> Any:
        data = self._request(
            "POST", self.urls.save_seance(), json_body=payload, submission=True
        )
        logger.info("session_saved", session_id=payload.get("id"))
        return data

    def delete_seance(self, seance_id: int) -> Any:
        data = self._request("DELETE", self.urls.delete_seance(seance_id), submission=True)
        logger.info("session_deleted", session_id=seance_id)
        return data

    # Reference data

    def list_classes(self) -> list[Reference]:
        return self._get_list(self.urls.list_classes(), Reference.model_validate)

    def list_jours(self) -> list[Reference]:
        cached = self.cache.get(JOURS_CACHE_KEY, self.config.days_cache_seconds)
        if cached is not None:
            return cached
        days = [
            day
            for day in self._get_list(self.urls.list_jours(), Reference.model_validate)
            if day.id <= LAST_TEACHING_DAY_ID
        ]
        self.cache.set(JOURS_CACHE_KEY, days)
        return days

    def list_types_activite(self) -> list[Reference]:
        return self._get_list(self.urls.list_types_activite(), Reference.model_validate)

    def list_matieres_by_classe(self, class_id: int) -> list[Reference]:
        subjects = self._get_list(self.urls.list_matieres_by_classe(class_id), _subject)
        return [subject for subject in subjects if subject is not None]

    def list_professeurs_by_classe(self, class_id: int) -> list[Reference]:
        teachers = self._get_list(self.urls.list_professeurs_by_classe(class_id), _teacher)
        return [teacher for teacher in teachers if teacher is not None]

    def list_surveillants(self) -> list[Reference]:
        return self._get_list(self.urls.list_surveillants(), _person)

    def close(self) -> None:
        self.session.close()
