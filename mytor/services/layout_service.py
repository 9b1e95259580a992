"""
Calendar layout for overlapping bookings.

Bookings that overlap, directly or through a chain of overlaps, form a
cluster. Each cluster is split into `max_concurrent` equal-width columns and
every booking takes the lowest column that is free at its start.
"""
from typing import List, Sequence

from mytor.models.db_models import Booking, LayoutEntry


def _max_concurrent(cluster: Sequence[Booking]) -> int:
    events = []
    for booking in cluster:
        events.append((booking.start_minutes, 1))
        events.append((booking.end_minutes, -1))
    # At equal times ends (-1) sort before starts (+1): touching bookings are not concurrent
    events.sort()

    current = peak = 0
    for _, delta in events:
        current += delta
        peak = max(peak, current)
    return peak


def _clusters(ordered: Sequence[Booking]) -> List[List[Booking]]:
    clusters: List[List[Booking]] = []
    cluster_end = None
    for booking in ordered:
        if clusters and booking.start_minutes < cluster_end:
            clusters[-1].append(booking)
            cluster_end = max(cluster_end, booking.end_minutes)
        else:
            clusters.append([booking])
            cluster_end = booking.end_minutes
    return clusters


def _layout_cluster(cluster: Sequence[Booking]) -> List[LayoutEntry]:
    total = _max_concurrent(cluster)
    width = 100 / total
    column_ends: List[int] = []
    entries = []

    for booking in cluster:
        for column, last_end in enumerate(column_ends):
            if last_end <= booking.start_minutes:
                column_ends[column] = booking.end_minutes
                break
        else:
            column = len(column_ends)
            column_ends.append(booking.end_minutes)

        entries.append(LayoutEntry(
            booking_id=booking.id,
            column=column,
            total_columns=total,
            left=column * width,
            width=width,
        ))
    return entries


def compute_overlap_layout(bookings: Sequence[Booking]) -> List[LayoutEntry]:
    """
    Column geometry for one day's bookings, in start-time order.
    Ties are broken by end time and then by input position, so the same input
    always yields the same columns.
    """
    ordered = [
        b for _, b in sorted(
            enumerate(bookings),
            key=lambda pair: (pair[1].start_minutes, pair[1].end_minutes, pair[0]),
        )
    ]

    layout: List[LayoutEntry] = []
    for cluster in _clusters(ordered):
        layout.extend(_layout_cluster(cluster))
    return layout
