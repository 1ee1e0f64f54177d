"""
Ranking utilities shared by the leaderboard service and its callers.

Provides the comparator, scope filtering and dense rank assignment used for
every leaderboard view, so all readers agree on one total order.
"""

from dataclasses import replace
from typing import Iterable, List, Optional, Tuple, Union

from tactris.data_models.leaderboard import Period, RankedEntry, SortField


class RankingEngine:
    """Pure ranking logic over RankedEntry collections."""

    @staticmethod
    def sort_key(entry: RankedEntry, sort_field: SortField) -> Tuple:
        """
        Key implementing the tie-break chain.

        Primary metric descending, the other metric descending, then
        created_at ascending so the earlier submission wins.
        """
        return (
            -entry.metric(sort_field),
            -entry.metric(sort_field.secondary),
            entry.created_at,
        )

    @staticmethod
    def compare(a: RankedEntry, b: RankedEntry, sort_field: Union[SortField, str] = SortField.SCORE) -> int:
        """
        Compare two entries for ranking.

        Returns:
            -1 if a ranks ahead of b, 1 if behind, 0 if tied on every level
        """
        sort_field = SortField.parse(sort_field)
        key_a = RankingEngine.sort_key(a, sort_field)
        key_b = RankingEngine.sort_key(b, sort_field)
        if key_a < key_b:
            return -1
        if key_a > key_b:
            return 1
        return 0

    @staticmethod
    def is_better_than(a: RankedEntry, b: RankedEntry, sort_field: Union[SortField, str] = SortField.SCORE) -> bool:
        return RankingEngine.compare(a, b, sort_field) < 0

    @staticmethod
    def filter_scope(
        entries: Iterable[RankedEntry],
        period: Optional[Union[Period, str]] = None,
        game_mode: Optional[str] = None
    ) -> List[RankedEntry]:
        """Keep entries matching the scope. A missing filter matches everything."""
        period = Period.parse(period) if period is not None else None
        return [
            entry for entry in entries
            if (period is None or entry.period is period)
            and (game_mode is None or entry.game_mode == game_mode)
        ]

    @staticmethod
    def sort_entries(
        entries: Iterable[RankedEntry],
        sort_field: Union[SortField, str] = SortField.SCORE,
        period: Optional[Union[Period, str]] = None,
        game_mode: Optional[str] = None
    ) -> List[RankedEntry]:
        """Filter to the scope and order it. sorted() is stable, exact ties keep input order."""
        sort_field = SortField.parse(sort_field)
        scoped = RankingEngine.filter_scope(entries, period, game_mode)
        return sorted(scoped, key=lambda entry: RankingEngine.sort_key(entry, sort_field))

    @staticmethod
    def rank_scope(
        entries: Iterable[RankedEntry],
        sort_field: Union[SortField, str] = SortField.SCORE,
        period: Optional[Union[Period, str]] = None,
        game_mode: Optional[str] = None
    ) -> List[RankedEntry]:
        """
        Order a scope and assign dense ranks 1..N by position.

        Inputs are not modified; the returned entries are copies carrying the
        rank for this (period, game_mode, sort_field) scope only.
        """
        ordered = RankingEngine.sort_entries(entries, sort_field, period, game_mode)
        return [replace(entry, rank=position) for position, entry in enumerate(ordered, start=1)]

    @staticmethod
    def find_rank(
        entries: Iterable[RankedEntry],
        user_id: int,
        sort_field: Union[SortField, str] = SortField.SCORE,
        period: Optional[Union[Period, str]] = None,
        game_mode: Optional[str] = None
    ) -> Optional[int]:
        """Best rank held by a user within the scope, None when absent."""
        for entry in RankingEngine.rank_scope(entries, sort_field, period, game_mode):
            if entry.user_id == user_id:
                return entry.rank
        return None

    @staticmethod
    def is_in_top_n(entry: RankedEntry, n: int = 10) -> bool:
        return 0 < entry.rank <= n

    @staticmethod
    def is_personal_best(
        entry: RankedEntry,
        same_user_entries: Optional[Iterable[RankedEntry]],
        sort_field: Union[SortField, str] = SortField.SCORE
    ) -> bool:
        """
        Check that no other entry of the same user strictly beats this one.

        An entry without other entries for the user is trivially a personal best.
        """
        sort_field = SortField.parse(sort_field)
        for other in same_user_entries or ():
            if other.user_id != entry.user_id or (entry.id is not None and other.id == entry.id):
                continue
            if other.metric(sort_field) > entry.metric(sort_field):
                return False
        return True
