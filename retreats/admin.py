from django.contrib import admin
from django.db import transaction

from .inventory import set_capacity
from .models import Retreat, Room


def _save_room(room: Room, change: bool) -> int:
    """Persist an admin-edited room; capacity edits go through inventory accounting."""
    if not change:
        room.available = room.capacity
        room.is_sold_out = room.capacity == 0
        room.save()
        return 0

    capacity = room.capacity
    stored = Room.objects.only("capacity").get(pk=room.pk)
    freed = 0
    with transaction.atomic():
        if capacity != stored.capacity:
            _, freed = set_capacity(room.pk, capacity)
        Room.objects.filter(pk=room.pk).update(
            name=room.name,
            description=room.description,
            price=room.price,
        )
    room.refresh_from_db()
    return freed


def _promote(room: Room, freed: int) -> None:
    if freed > 0:
        from waitlist.services import promote_for_room  # avoid circular import

        promote_for_room(room.pk)


class RoomInline(admin.TabularInline):
    model = Room
    extra = 0
    fields = ("name", "price", "capacity", "available", "is_sold_out")
    readonly_fields = ("available", "is_sold_out")


@admin.register(Retreat)
class RetreatAdmin(admin.ModelAdmin):
    list_display = ("title", "destination", "start_date", "end_date", "installment_count", "is_published")
    list_filter = ("is_published", "destination")
    search_fields = ("title", "destination", "slug")
    prepopulated_fields = {"slug": ("title",)}
    inlines = [RoomInline]

    def save_formset(self, request, form, formset, change):
        if formset.model is not Room:
            return super().save_formset(request, form, formset, change)
        rooms = formset.save(commit=False)
        for room in formset.deleted_objects:
            room.delete()
        for room in rooms:
            _promote(room, _save_room(room, change=room.pk is not None))
        formset.save_m2m()


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ("name", "retreat", "price", "capacity", "available", "is_sold_out")
    list_filter = ("is_sold_out", "retreat")
    search_fields = ("name", "retreat__title")
    # Seat counts change only through inventory accounting
    readonly_fields = ("available", "is_sold_out", "created_at", "updated_at")

    def save_model(self, request, obj, form, change):
        _promote(obj, _save_room(obj, change))
