"""
Reservation Manager

Time-bounded parking reservations with per-vehicle-type priority
waitlists. Capacity is a coarse lot-wide proxy: a reservation can be
confirmed while the number of confirmed or active reservations of the
same vehicle type overlapping its window is below the lot's total
space count. No concrete space is held.

Two background loops reconcile state:
- the expiration sweep marks missed reservations EXPIRED and sends due
  pre-arrival reminders
- the waitlist processor promotes waitlist heads with strict
  head-of-line blocking

Expiry and reminders are discovered by polling, so detection lags by up
to one sweep period.

Lock order: a vehicle-type lock may be taken before the table lock,
never the other way round.
"""

import heapq
import itertools
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from .models import (
    CustomerClass,
    ParkingReservation,
    ReservationPolicy,
    ReservationStatus,
    VehicleType,
)
from .notifications import LoggingNotifier, Notifier
from .results import ReservationResult

logger = logging.getLogger(__name__)

REMINDER_LEAD_TIME = timedelta(minutes=15)

MSG_CONFIRMED_IMMEDIATELY = "Reservation confirmed immediately"
MSG_PROMOTED = "Reservation confirmed! Space allocated."
MSG_EXPIRED = "Reservation expired due to late arrival"
MSG_REMINDER = "Reservation starts in 15 minutes. Please arrive soon."

# (priority, reservation_time, insertion sequence, reservation)
WaitlistEntry = Tuple[int, datetime, int, ParkingReservation]


class CapacitySource(Protocol):
    @property
    def total_spaces(self) -> int:
        ...


class ReservationManager:
    """
    Creates, confirms, waitlists, expires and promotes reservations.

    Creation and cancellation may be called from any thread while the two
    sweeps run. Each vehicle type has its own lock covering the capacity
    check, confirmation and every waitlist peek/push/pop for that type.
    """

    def __init__(
        self,
        parking_lot: CapacitySource,
        policy: Optional[ReservationPolicy] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = datetime.now,
        expiration_interval: float = 60.0,
        waitlist_interval: float = 300.0
    ):
        """
        Args:
            parking_lot: Anything exposing ``total_spaces``
            policy: Booking constraints; defaults to ``ReservationPolicy()``
            notifier: Customer notification sink; defaults to logging
            clock: Source of the current time
            expiration_interval: Seconds between expiration sweeps
            waitlist_interval: Seconds between waitlist promotion passes
        """
        self.parking_lot = parking_lot
        self.policy = policy or ReservationPolicy()
        self.notifier = notifier or LoggingNotifier()
        self._clock = clock
        self.expiration_interval = expiration_interval
        self.waitlist_interval = waitlist_interval

        self._reservations: Dict[str, ParkingReservation] = {}
        self._start_time_index: Dict[datetime, List[str]] = {}
        self._reminders: Dict[str, datetime] = {}
        self._table_lock = threading.Lock()

        self._waitlists: Dict[VehicleType, List[WaitlistEntry]] = {vt: [] for vt in VehicleType}
        self._type_locks: Dict[VehicleType, threading.Lock] = {
            vt: threading.Lock() for vt in VehicleType
        }
        self._sequence = itertools.count()

        self._running = False
        self._threads: List[threading.Thread] = []
        self._stop_event = threading.Event()

    # =========================================================================
    # Creation
    # =========================================================================

    def create_reservation(
        self,
        vehicle_id: str,
        vehicle_type: VehicleType,
        start_time: datetime,
        end_time: datetime,
        customer_class: CustomerClass = CustomerClass.REGULAR
    ) -> ReservationResult:
        """
        Validate and place a reservation request.

        Args:
            vehicle_id: Vehicle identifier, also the notification recipient
            vehicle_type: Type of the vehicle
            start_time: Start of the reserved window
            end_time: End of the reserved window
            customer_class: Determines waitlist priority

        Returns:
            ReservationResult: confirmed, waitlisted with a 1-based position,
            or failed with the validation message
        """
        requested_type = vehicle_type
        vehicle_type = VehicleType.lookup(requested_type)
        if vehicle_type is None:
            return ReservationResult.failure(f"Unknown vehicle type: {requested_type}")

        now = self._clock()

        if start_time < now:
            return ReservationResult.failure("Cannot make reservation for past time")
        if end_time <= start_time:
            return ReservationResult.failure("End time must be after start time")
        if not self.policy.is_valid_duration(start_time, end_time):
            return ReservationResult.failure(
                f"Reservation duration violates policy: "
                f"min: {self.policy.min_duration_minutes} minutes, "
                f"max: {self.policy.max_duration_minutes} minutes"
            )
        if not self.policy.is_valid_advance_booking(start_time, now):
            return ReservationResult.failure(
                f"Reservation too far in advance: "
                f"max {self.policy.max_advance_booking_days} days"
            )

        reservation = ParkingReservation.create(
            customer_class, vehicle_id, vehicle_type, start_time, end_time, now,
            grace_period=self.policy.grace_period,
        )

        with self._type_locks[vehicle_type]:
            if self._has_capacity(vehicle_type, start_time, end_time):
                self._confirm(reservation, now)
                self._register(reservation)
                position = None
            else:
                reservation.waitlist()
                self._register(reservation)
                heapq.heappush(self._waitlists[vehicle_type], self._waitlist_entry(reservation))
                position = self._position_in_waitlist(reservation)

        if position is None:
            logger.info(
                f"Reservation {reservation.reservation_id} confirmed for {vehicle_id} "
                f"({customer_class.label}, {vehicle_type.value})"
            )
            return ReservationResult.confirmed(reservation, MSG_CONFIRMED_IMMEDIATELY)

        logger.info(
            f"Reservation {reservation.reservation_id} for {vehicle_id} waitlisted "
            f"at position {position} ({customer_class.label}, {vehicle_type.value})"
        )
        return ReservationResult.waitlisted(reservation, position)

    def _waitlist_entry(self, reservation: ParkingReservation) -> WaitlistEntry:
        priority, reservation_time = reservation.sort_key()
        return (priority, reservation_time, next(self._sequence), reservation)

    def _register(self, reservation: ParkingReservation):
        with self._table_lock:
            self._reservations[reservation.reservation_id] = reservation
            self._start_time_index.setdefault(reservation.start_time, []).append(
                reservation.reservation_id
            )

    def _unindex(self, reservation: ParkingReservation):
        with self._table_lock:
            ids = self._start_time_index.get(reservation.start_time)
            if ids and reservation.reservation_id in ids:
                ids.remove(reservation.reservation_id)
                if not ids:
                    del self._start_time_index[reservation.start_time]
            self._reminders.pop(reservation.reservation_id, None)

    # =========================================================================
    # Capacity
    # =========================================================================

    def count_overlapping(self, vehicle_type: VehicleType, start_time: datetime, end_time: datetime) -> int:
        """Confirmed or active reservations of this type whose window overlaps [start, end)"""
        with self._table_lock:
            return sum(
                1 for r in self._reservations.values()
                if r.vehicle_type == vehicle_type
                and r.status in (ReservationStatus.CONFIRMED, ReservationStatus.ACTIVE)
                and r.overlaps(start_time, end_time)
            )

    def _has_capacity(self, vehicle_type: VehicleType, start_time: datetime, end_time: datetime) -> bool:
        overlapping = self.count_overlapping(vehicle_type, start_time, end_time)
        return self.parking_lot.total_spaces - overlapping > 0

    def _confirm(self, reservation: ParkingReservation, now: datetime):
        reservation.confirm(f"RESERVED-{reservation.reservation_id}", now)
        if reservation.start_time > now:
            reminder_at = max(now, reservation.start_time - REMINDER_LEAD_TIME)
            with self._table_lock:
                self._reminders[reservation.reservation_id] = reminder_at

    # =========================================================================
    # Waitlists
    # =========================================================================

    def _position_in_waitlist(self, reservation: ParkingReservation) -> Optional[int]:
        """Caller holds the vehicle-type lock"""
        ordered = sorted(self._waitlists[reservation.vehicle_type])
        for position, entry in enumerate(ordered, start=1):
            if entry[3] is reservation:
                return position
        return None

    def _remove_from_waitlist(self, reservation: ParkingReservation) -> bool:
        """Caller holds the vehicle-type lock"""
        waitlist = self._waitlists[reservation.vehicle_type]
        for index, entry in enumerate(waitlist):
            if entry[3] is reservation:
                waitlist[index] = waitlist[-1]
                waitlist.pop()
                heapq.heapify(waitlist)
                return True
        return False

    def get_waitlist_size(self, vehicle_type: VehicleType) -> int:
        with self._type_locks[vehicle_type]:
            return len(self._waitlists[vehicle_type])

    def get_waitlist_position(self, reservation_id: str) -> Optional[int]:
        reservation = self.get_reservation(reservation_id)
        if reservation is None:
            return None
        with self._type_locks[reservation.vehicle_type]:
            return self._position_in_waitlist(reservation)

    def get_waitlist(self, vehicle_type: VehicleType) -> List[ParkingReservation]:
        """Waitlisted reservations in promotion order"""
        with self._type_locks[vehicle_type]:
            return [entry[3] for entry in sorted(self._waitlists[vehicle_type])]

    def process_waitlists(self) -> List[ParkingReservation]:
        """
        Promote waitlist heads while capacity allows.

        Expired heads are dropped. The first head that cannot be allocated
        blocks the rest of its vehicle type until the next pass.

        Returns:
            Reservations confirmed during this pass
        """
        now = self._clock()
        promoted: List[ParkingReservation] = []
        expired: List[ParkingReservation] = []

        for vehicle_type in VehicleType:
            with self._type_locks[vehicle_type]:
                waitlist = self._waitlists[vehicle_type]
                while waitlist:
                    reservation = waitlist[0][3]
                    if reservation.status != ReservationStatus.WAITLISTED:
                        heapq.heappop(waitlist)
                        continue
                    if reservation.is_expired(now):
                        heapq.heappop(waitlist)
                        reservation.expire()
                        expired.append(reservation)
                        continue
                    if not self._has_capacity(vehicle_type, reservation.start_time, reservation.end_time):
                        break
                    heapq.heappop(waitlist)
                    self._confirm(reservation, now)
                    promoted.append(reservation)

        for reservation in expired:
            self._unindex(reservation)
            logger.info(f"Waitlisted reservation {reservation.reservation_id} expired")
            self.notifier.notify(reservation.vehicle_id, MSG_EXPIRED)
        for reservation in promoted:
            logger.info(f"Reservation {reservation.reservation_id} promoted from waitlist")
            self.notifier.notify(reservation.vehicle_id, MSG_PROMOTED)

        return promoted

    # =========================================================================
    # Expiration and reminders
    # =========================================================================

    def expire_reservations(self) -> List[ParkingReservation]:
        """
        Mark every missed reservation EXPIRED and send due reminders.

        Returns:
            Reservations expired during this sweep
        """
        now = self._clock()
        with self._table_lock:
            candidates = [r for r in self._reservations.values() if r.is_expired(now)]

        expired: List[ParkingReservation] = []
        for reservation in candidates:
            with self._type_locks[reservation.vehicle_type]:
                # Re-check: a concurrent cancel or promotion may have won
                if not reservation.is_expired(now):
                    continue
                if reservation.status == ReservationStatus.WAITLISTED:
                    self._remove_from_waitlist(reservation)
                reservation.expire()
            self._unindex(reservation)
            expired.append(reservation)
            logger.info(f"Reservation {reservation.reservation_id} for {reservation.vehicle_id} expired")
            self.notifier.notify(reservation.vehicle_id, MSG_EXPIRED)

        self.send_due_reminders(now)
        return expired

    def send_due_reminders(self, now: Optional[datetime] = None) -> List[str]:
        """Notify confirmed customers whose reminder time has passed; returns reservation ids"""
        now = now or self._clock()
        with self._table_lock:
            due = [rid for rid, at in self._reminders.items() if at <= now]
            for rid in due:
                del self._reminders[rid]
            reservations = [self._reservations[rid] for rid in due if rid in self._reservations]

        sent = []
        for reservation in reservations:
            if reservation.status == ReservationStatus.CONFIRMED:
                self.notifier.notify(reservation.vehicle_id, MSG_REMINDER)
                sent.append(reservation.reservation_id)
        return sent

    def pending_reminder_count(self) -> int:
        with self._table_lock:
            return len(self._reminders)

    # =========================================================================
    # Lifecycle of a single reservation
    # =========================================================================

    def cancel_reservation(self, reservation_id: str, reason: str = "Cancelled by customer") -> bool:
        """Cancel a non-terminal reservation; False if unknown or already finished"""
        reservation = self.get_reservation(reservation_id)
        if reservation is None:
            return False

        with self._type_locks[reservation.vehicle_type]:
            if reservation.status.is_terminal:
                return False
            if reservation.status == ReservationStatus.WAITLISTED:
                self._remove_from_waitlist(reservation)
            reservation.cancel(reason)

        self._unindex(reservation)
        logger.info(f"Reservation {reservation_id} cancelled: {reason}")
        return True

    def activate_reservation(self, reservation_id: str) -> bool:
        """Check the customer in; only within [start - 5min, expiration)"""
        reservation = self.get_reservation(reservation_id)
        if reservation is None:
            return False

        now = self._clock()
        with self._type_locks[reservation.vehicle_type]:
            if not reservation.can_be_activated(now):
                logger.warning(
                    f"Reservation {reservation_id} cannot be activated "
                    f"(status {reservation.status.value})"
                )
                return False
            reservation.activate(now)

        with self._table_lock:
            self._reminders.pop(reservation_id, None)
        logger.info(f"Reservation {reservation_id} activated, {reservation.vehicle_id} arrived")
        return True

    def complete_reservation(self, reservation_id: str) -> bool:
        reservation = self.get_reservation(reservation_id)
        if reservation is None:
            return False

        with self._type_locks[reservation.vehicle_type]:
            if reservation.status != ReservationStatus.ACTIVE:
                return False
            reservation.complete()

        self._unindex(reservation)
        logger.info(f"Reservation {reservation_id} completed")
        return True

    # =========================================================================
    # Queries
    # =========================================================================

    def get_reservation(self, reservation_id: str) -> Optional[ParkingReservation]:
        with self._table_lock:
            return self._reservations.get(reservation_id)

    def get_active_reservations(self) -> List[ParkingReservation]:
        with self._table_lock:
            return [r for r in self._reservations.values() if r.status == ReservationStatus.ACTIVE]

    def get_upcoming_reservations(self, window: timedelta = timedelta(hours=1)) -> List[ParkingReservation]:
        """Confirmed reservations starting within ``window`` from now, earliest first"""
        now = self._clock()
        horizon = now + window
        with self._table_lock:
            upcoming = []
            for start_time in sorted(self._start_time_index):
                if start_time <= now:
                    continue
                if start_time >= horizon:
                    break
                for rid in self._start_time_index[start_time]:
                    reservation = self._reservations[rid]
                    if reservation.status == ReservationStatus.CONFIRMED:
                        upcoming.append(reservation)
        return upcoming

    def get_reservations_starting_at(self, start_time: datetime) -> List[ParkingReservation]:
        with self._table_lock:
            return [self._reservations[rid] for rid in self._start_time_index.get(start_time, [])]

    def get_status_counts(self) -> Dict[ReservationStatus, int]:
        counts = {status: 0 for status in ReservationStatus}
        with self._table_lock:
            for reservation in self._reservations.values():
                counts[reservation.status] += 1
        return counts

    # =========================================================================
    # Background loops
    # =========================================================================

    def _expiration_loop(self):
        logger.info("Reservation expiration sweep started")
        while self._running:
            try:
                self.expire_reservations()
            except Exception as e:
                logger.error(f"Expiration sweep error: {e}", exc_info=True)
            self._stop_event.wait(self.expiration_interval)
        logger.info("Reservation expiration sweep stopped")

    def _waitlist_loop(self):
        logger.info("Waitlist processor started")
        while self._running:
            try:
                self.process_waitlists()
            except Exception as e:
                logger.error(f"Waitlist processing error: {e}", exc_info=True)
            self._stop_event.wait(self.waitlist_interval)
        logger.info("Waitlist processor stopped")

    def start(self):
        """Start the expiration sweep and the waitlist processor"""
        if self._running:
            logger.warning("Reservation Manager is already running")
            return

        self._stop_event.clear()
        self._running = True
        self._threads = [
            threading.Thread(target=self._expiration_loop, name="Reservation-Expiration", daemon=True),
            threading.Thread(target=self._waitlist_loop, name="Reservation-Waitlist", daemon=True),
        ]
        for thread in self._threads:
            thread.start()
        logger.info("Reservation Manager started")

    def stop(self):
        self._running = False
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout=5)
        self._threads = []
        logger.info("Reservation Manager stopped")

    @property
    def is_running(self) -> bool:
        return self._running
