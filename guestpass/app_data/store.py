"""
Centralized app data store.

Fetches residents, units and communities cache-first and serves synchronous
derivations (members of a unit, search) over the loaded lists. Components
should read entities through this store instead of querying the remote
store directly.
"""

import asyncio
import concurrent.futures
import logging
import threading
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from guestpass.data_cache import DataCacheService
from guestpass.errors import RemoteUnavailable
from guestpass.remote import DOCUMENT_ID, DocumentStore
from .models import Community, LoadState, Resident, Unit

logger = logging.getLogger(__name__)

RESIDENTS_COLLECTION = "users"
COMMUNITIES_COLLECTION = "communities"

SEARCH_FIELDS = ("all", "name", "email", "mobile", "national_id")


def _now_ms() -> int:
    return int(time.time() * 1000)


class AppDataStore:
    """
    Entity fetch orchestrator.

    Per entity type the load state moves UNLOADED -> LOADING -> LOADED. A
    failed load records the error, resets the state to UNLOADED and re-raises
    (RemoteUnavailable for remote outages); lists loaded earlier and cache
    entries are left in place.
    """

    def __init__(
        self,
        document_store: DocumentStore,
        cache: DataCacheService,
        residents_limit: int = 5000,
        units_page_size: int = 1000,
        communities_limit: int = 100,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize AppDataStore.

        Args:
            document_store: Remote document store
            cache: Persistent cache layer
            residents_limit: Cap on the single residents query
            units_page_size: Page size for units pagination
            communities_limit: Cap on the communities query
            clock: Returns the current time in ms epoch
        """
        self.document_store = document_store
        self.cache = cache
        self.residents_limit = residents_limit
        self.units_page_size = units_page_size
        self.communities_limit = communities_limit
        self._clock = clock or _now_ms

        # Scope (community id, or None for all residents) -> entities
        self._residents: Dict[Optional[str], List[Resident]] = {}
        self._units: Dict[str, List[Unit]] = {}
        self.communities: List[Community] = []

        self.load_state: Dict[str, LoadState] = {
            "residents": LoadState.UNLOADED,
            "units": LoadState.UNLOADED,
            "communities": LoadState.UNLOADED,
        }
        self.errors: Dict[str, Optional[str]] = {
            "residents": None,
            "units": None,
            "communities": None,
        }
        self.last_fetched: Dict[str, Optional[int]] = {}
        self.last_refreshed: Optional[int] = None
        self.initialized = False

        self._inflight: Dict[str, concurrent.futures.Future] = {}
        # Guards _inflight and the entity maps across request threads
        self._lock = threading.RLock()

    # =====================
    # Fetch functions
    # =====================

    async def fetch_residents(
        self,
        force_refresh: bool = False,
        community_id: Optional[str] = None,
    ) -> List[Resident]:
        """
        Fetch residents of a community (all residents when community_id is None).

        A cache hit returns immediately. Concurrent calls for the same scope
        share one remote query.
        """
        if not force_refresh:
            cached = self.cache.get("residents", community_id)
            if cached is not None:
                residents = self._parse(Resident, cached.data)
                if residents is not None:
                    with self._lock:
                        self._residents[community_id] = residents
                    self._mark_loaded("residents", community_id, cached.timestamp)
                    return list(residents)
                self.cache.clear("residents", community_id)

        residents = await self._run_once(
            f"residents:{community_id or '*'}",
            lambda: self._load_residents(community_id),
        )
        return list(residents)

    async def fetch_units(self, community_id: str, force_refresh: bool = False) -> List[Unit]:
        """
        Fetch units of a community.

        Units rarely change, so any cached entry is used regardless of age
        unless force_refresh is set.
        """
        if not force_refresh:
            cached = self.cache.get("units", community_id, respect_ttl=False)
            if cached is not None:
                units = self._parse(Unit, cached.data)
                if units is not None:
                    with self._lock:
                        self._units[community_id] = units
                    self._mark_loaded("units", community_id, cached.timestamp)
                    return list(units)
                self.cache.clear("units", community_id)

        units = await self._run_once(
            f"units:{community_id}",
            lambda: self._load_units(community_id),
        )
        return list(units)

    async def fetch_communities(self, force_refresh: bool = False) -> List[Community]:
        """Fetch all communities (single bounded page)."""
        if not force_refresh:
            cached = self.cache.get("communities")
            if cached is not None:
                communities = self._parse(Community, cached.data)
                if communities is not None:
                    self.communities = communities
                    self._mark_loaded("communities", None, cached.timestamp)
                    return list(communities)
                self.cache.clear("communities")

        communities = await self._run_once("communities", self._load_communities)
        return list(communities)

    async def fetch_resident_count(
        self,
        community_id: Optional[str] = None,
        force_refresh: bool = False,
    ) -> int:
        """Resident count, cached separately as an aggregate."""
        if not force_refresh:
            cached = self.cache.get("counts", community_id)
            if cached is not None and isinstance(cached.data, dict):
                count = cached.data.get("residents")
                if isinstance(count, int):
                    return count

        if community_id in self._residents and not force_refresh:
            residents = self._residents[community_id]
        else:
            residents = await self.fetch_residents(force_refresh, community_id)

        count = len(residents)
        self.cache.set("counts", {"residents": count}, community_id)
        logger.info(f"AppDataStore: Resident count for {community_id or 'all'}: {count}")
        return count

    async def initialize(self, community_id: Optional[str] = None) -> None:
        """Load communities and residents once at startup."""
        if self.initialized:
            logger.debug("AppDataStore: Already initialized")
            return

        logger.info("AppDataStore: Initializing app data...")
        await asyncio.gather(
            self.fetch_communities(),
            self.fetch_residents(community_id=community_id),
        )
        await self.fetch_resident_count(community_id)
        self.initialized = True
        logger.info("AppDataStore: Initialization complete")

    async def refresh_all(self, community_id: str) -> int:
        """
        Invalidate and re-fetch residents and units of a community.

        Returns:
            The refresh timestamp (ms epoch)
        """
        logger.info(f"AppDataStore: Refreshing all data for community {community_id}")
        self.cache.clear("residents", community_id)
        self.cache.clear("units", community_id)
        self.cache.clear("counts", community_id)

        await asyncio.gather(
            self.fetch_residents(True, community_id),
            self.fetch_units(community_id, True),
        )

        self.last_refreshed = self._clock()
        return self.last_refreshed

    def last_updated(self, community_id: Optional[str] = None) -> Optional[int]:
        """Most recent cache write time for the community's data."""
        return self.cache.most_recent_timestamp(community_id)

    # =====================
    # Derivations
    # =====================

    def get_residents_by_community(self, community_id: str) -> List[Resident]:
        if community_id in self._residents:
            return list(self._residents[community_id])
        return [r for r in self._residents.get(None, []) if r.belongs_to(community_id)]

    def get_members_of_unit(self, community_id: str, unit: str) -> List[Resident]:
        """Residents whose membership in the community names this unit."""
        unit = (unit or "").strip()
        members = []
        for resident in self.get_residents_by_community(community_id):
            membership = resident.membership_for(community_id)
            if membership is not None and membership.unit == unit:
                members.append(resident)
        return members

    def get_resident(self, user_id: str, community_id: Optional[str] = None) -> Optional[Resident]:
        pool = self.get_residents_by_community(community_id) if community_id else self._all_residents()
        for resident in pool:
            if resident.id == user_id:
                return resident
        return None

    def search_residents(
        self,
        term: str,
        field: str = "all",
        community_id: Optional[str] = None,
    ) -> List[Resident]:
        """Client-side search over loaded residents."""
        if field not in SEARCH_FIELDS:
            field = "all"
        pool = self.get_residents_by_community(community_id) if community_id else self._all_residents()
        term = term or ""
        term_lower = term.lower()

        def matches(resident: Resident) -> bool:
            name = resident.display_name.lower()
            email = (resident.email or "").lower()
            mobile = resident.mobile or ""
            national_id = resident.national_id or ""
            if field == "name":
                return term_lower in name
            if field == "email":
                return term_lower in email
            if field == "mobile":
                return term in mobile
            if field == "national_id":
                return term in national_id
            return (
                term_lower in name
                or term_lower in email
                or term in mobile
                or term in national_id
            )

        return [r for r in pool if matches(r)]

    def get_residents_with_communities(self, community_id: Optional[str] = None) -> List[Resident]:
        """Residents with community name, type and location filled into memberships."""
        communities = {c.id: c for c in self.communities}
        pool = self.get_residents_by_community(community_id) if community_id else self._all_residents()

        enhanced = []
        for resident in pool:
            memberships = []
            for membership in resident.memberships:
                community = communities.get(membership.community_id)
                memberships.append(membership.model_copy(update={
                    "community_name": community.name if community else "Unknown Community",
                    "community_type": community.type if community else "Unknown Type",
                    "community_location": community.location if community else "Unknown Location",
                }))
            enhanced.append(resident.model_copy(update={"memberships": memberships}))
        return enhanced

    def get_units(self, community_id: str) -> List[Unit]:
        return list(self._units.get(community_id, []))

    # =====================
    # Cache patch helpers
    # =====================

    def update_resident_in_cache(self, user_id: str, updates: Dict[str, Any]) -> None:
        """Apply a local edit to every loaded copy of a resident."""
        with self._lock:
            for scope, residents in self._residents.items():
                changed = False
                for index, resident in enumerate(residents):
                    if resident.id == user_id:
                        residents[index] = resident.model_copy(update=updates)
                        changed = True
                if changed:
                    self._persist_residents(scope)
        logger.info(f"AppDataStore: Resident updated in cache: {user_id}")

    def remove_resident_from_cache(self, user_id: str) -> None:
        with self._lock:
            for scope, residents in self._residents.items():
                remaining = [r for r in residents if r.id != user_id]
                if len(remaining) != len(residents):
                    self._residents[scope] = remaining
                    self._persist_residents(scope)
        logger.info(f"AppDataStore: Resident removed from cache: {user_id}")

    def add_resident_to_cache(self, resident: Resident) -> None:
        with self._lock:
            for scope, residents in self._residents.items():
                if scope is None or resident.belongs_to(scope):
                    self._residents[scope] = [resident] + [r for r in residents if r.id != resident.id]
                    self._persist_residents(scope)
        logger.info(f"AppDataStore: Resident added to cache: {resident.id}")

    # =====================
    # Private helpers
    # =====================

    async def _run_once(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run loader, or await the pending run for the same key.

        Flask runs each async view on its own event loop in a worker thread,
        so the pending run is a thread-safe future that any loop can await.
        """
        with self._lock:
            pending = self._inflight.get(key)
            if pending is None:
                future: concurrent.futures.Future = concurrent.futures.Future()
                self._inflight[key] = future

        if pending is not None:
            logger.info(f"AppDataStore: {key} already loading, waiting...")
            return await asyncio.shield(asyncio.wrap_future(pending))

        try:
            result = await loader()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    async def _load_residents(self, community_id: Optional[str]) -> List[Resident]:
        self._start_loading("residents")
        logger.info("AppDataStore: Fetching residents from remote store...")
        try:
            docs = await self.document_store.query(
                RESIDENTS_COLLECTION,
                order_by="createdAt",
                descending=True,
                limit=self.residents_limit,
            )
            residents = [Resident.from_document(doc.id, doc.data) for doc in docs]
        except Exception as e:
            self._fail_loading("residents", e)
            raise

        if community_id is not None:
            residents = [r for r in residents if r.belongs_to(community_id)]

        with self._lock:
            self._residents[community_id] = residents
        self.cache.set("residents", self._dump(residents), community_id)
        self._mark_loaded("residents", community_id, self._clock())
        logger.info(f"AppDataStore: Fetched {len(residents)} residents for {community_id or 'all communities'}")
        return residents

    async def _load_units(self, community_id: str) -> List[Unit]:
        self._start_loading("units")
        collection = f"{COMMUNITIES_COLLECTION}/{community_id}/units"
        units: List[Unit] = []
        cursor = None
        pages = 0

        try:
            while True:
                page = await self.document_store.query(
                    collection,
                    order_by=DOCUMENT_ID,
                    limit=self.units_page_size,
                    start_after=cursor,
                )
                pages += 1
                units.extend(Unit.from_document(community_id, doc.id, doc.data) for doc in page)
                if len(page) < self.units_page_size:
                    break
                cursor = page[-1]
        except Exception as e:
            self._fail_loading("units", e)
            raise

        with self._lock:
            self._units[community_id] = units
        self.cache.set("units", self._dump(units), community_id)
        self._mark_loaded("units", community_id, self._clock())
        logger.info(f"AppDataStore: Fetched {len(units)} units for {community_id} in {pages} pages")
        return units

    async def _load_communities(self) -> List[Community]:
        self._start_loading("communities")
        try:
            docs = await self.document_store.query(COMMUNITIES_COLLECTION, limit=self.communities_limit)
            communities = [Community.from_document(doc.id, doc.data) for doc in docs]
        except Exception as e:
            self._fail_loading("communities", e)
            raise

        self.communities = communities
        self.cache.set("communities", self._dump(communities))
        self._mark_loaded("communities", None, self._clock())
        logger.info(f"AppDataStore: Fetched {len(communities)} communities")
        return communities

    def _start_loading(self, entity_type: str) -> None:
        self.load_state[entity_type] = LoadState.LOADING
        self.errors[entity_type] = None

    def _fail_loading(self, entity_type: str, error: Exception) -> None:
        message = error.message if isinstance(error, RemoteUnavailable) else str(error)
        logger.error(f"AppDataStore: Error fetching {entity_type}: {message}")
        self.errors[entity_type] = message
        self.load_state[entity_type] = LoadState.UNLOADED

    def _mark_loaded(self, entity_type: str, scope: Optional[str], timestamp: int) -> None:
        self.load_state[entity_type] = LoadState.LOADED
        self.last_fetched[f"{entity_type}:{scope or '*'}"] = timestamp

    def _all_residents(self) -> List[Resident]:
        seen = {}
        for residents in self._residents.values():
            for resident in residents:
                seen.setdefault(resident.id, resident)
        return list(seen.values())

    def _persist_residents(self, scope: Optional[str]) -> None:
        self.cache.set("residents", self._dump(self._residents[scope]), scope)

    @staticmethod
    def _dump(models: List[Any]) -> List[Dict[str, Any]]:
        return [m.model_dump(mode="json", by_alias=True) for m in models]

    @staticmethod
    def _parse(model: Any, data: Any) -> Optional[List[Any]]:
        if not isinstance(data, list):
            return None
        try:
            return [model.model_validate(item) for item in data]
        except ValidationError as e:
            logger.warning(f"AppDataStore: Discarding malformed cached {model.__name__} list: {e}")
            return None
