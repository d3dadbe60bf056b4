import pytest

from core.exceptions import InsufficientInventory
from retreats.inventory import available_seats, release_seats, set_capacity, take_seats
from retreats.models import Room
from tests.factories import RoomFactory


@pytest.mark.django_db
def test_take_seats_decrements_and_flags_sold_out(room):
    take_seats(room.pk, 3)
    room.refresh_from_db()
    assert room.available == 1
    assert room.is_sold_out is False

    take_seats(room.pk, 1)
    room.refresh_from_db()
    assert room.available == 0
    assert room.is_sold_out is True


@pytest.mark.django_db
def test_take_seats_never_oversells(room):
    take_seats(room.pk, 3)
    with pytest.raises(InsufficientInventory) as exc:
        take_seats(room.pk, 2)
    assert "1 spots available, but 2 needed" in exc.value.message
    room.refresh_from_db()
    assert room.available == 1


@pytest.mark.django_db
def test_release_is_capped_at_capacity(room):
    take_seats(room.pk, 4)
    release_seats(room.pk, 10)
    room.refresh_from_db()
    assert room.available == room.capacity
    assert room.is_sold_out is False


@pytest.mark.django_db
def test_non_positive_counts_rejected(room):
    with pytest.raises(ValueError):
        take_seats(room.pk, 0)
    with pytest.raises(ValueError):
        release_seats(room.pk, -1)


@pytest.mark.django_db
def test_set_capacity_keeps_occupied_seats(room):
    take_seats(room.pk, 2)
    updated, freed = set_capacity(room.pk, 6)
    assert (updated.capacity, updated.available, freed) == (6, 4, 2)

    updated, freed = set_capacity(room.pk, 2)
    assert (updated.available, updated.is_sold_out, freed) == (0, True, -4)

    with pytest.raises(InsufficientInventory):
        set_capacity(room.pk, 1)
    assert Room.objects.get(pk=room.pk).capacity == 2


@pytest.mark.django_db
def test_available_seats_by_room_and_retreat(room):
    other = RoomFactory(retreat=room.retreat, capacity=2)
    take_seats(room.pk, 1)
    assert available_seats(room.retreat_id, room.pk) == 3
    assert available_seats(room.retreat_id) == 3 + other.available
