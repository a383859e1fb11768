"""Base index client interface.

Defines the abstract contract the retrieval engine depends on, independent of
the backing vector database (Qdrant today, others later).

All methods are asynchronous; implementations are expected to manage their
own connection pool and timeouts.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Union

if TYPE_CHECKING:  # pragma: no cover
    from .filters import Filter

PointId = Union[str, int]


@dataclass
class IndexPoint:
    """A point returned by the index.

    ``score`` is only set for similarity queries; scroll and retrieve leave it
    as ``None``.
    """
    id: PointId
    payload: Dict[str, Any] = field(default_factory=dict)
    score: Optional[float] = None
    vector: Optional[List[float]] = None


@dataclass
class ScrollPage:
    """One page of a scroll request."""
    points: List[IndexPoint]
    next_page_offset: Optional[PointId] = None


class IndexClient(ABC):
    """Abstract base class for vector index clients.

    Implementations must return ``search`` results sorted by descending score
    and raise ``IndexUnavailable`` for backend or connectivity failures.
    """

    @abstractmethod
    async def search(
        self,
        collection: str,
        vector: Sequence[float],
        filter: Optional["Filter"] = None,
        limit: int = 10,
        score_threshold: Optional[float] = None,
        with_payload: bool = True,
        with_vector: bool = False,
        ef: Optional[int] = None
    ) -> List[IndexPoint]:
        """Nearest-neighbour query.

        Returns at most ``limit`` points with ``score >= score_threshold``.
        """
        pass

    @abstractmethod
    async def scroll(
        self,
        collection: str,
        filter: Optional["Filter"] = None,
        limit: int = 10,
        offset: Optional[PointId] = None,
        with_payload: bool = True,
        with_vector: bool = False
    ) -> ScrollPage:
        """Filtered, unranked iteration over points."""
        pass

    @abstractmethod
    async def count(
        self,
        collection: str,
        filter: Optional["Filter"] = None,
        exact: bool = True
    ) -> int:
        """Count points matching ``filter``."""
        pass

    @abstractmethod
    async def retrieve(
        self,
        collection: str,
        ids: Sequence[PointId],
        with_payload: bool = True,
        with_vector: bool = False
    ) -> List[IndexPoint]:
        """Fetch points by id; unknown ids are skipped."""
        pass

    @abstractmethod
    async def collection_info(self, collection: str) -> Dict[str, Any]:
        """Return basic collection statistics."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the index is reachable."""
        pass

    async def close(self) -> None:
        """Release client resources."""
        return None


class RetrievalError(Exception):
    """Base exception for retrieval operations."""
    pass


class IndexUnavailable(RetrievalError):
    """Backend or connectivity failure of the vector index."""
    pass


class InvalidFilter(RetrievalError, ValueError):
    """Malformed filter clause (a caller bug)."""
    pass
