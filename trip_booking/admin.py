from django.contrib import admin

from .models import (
    City,
    CityMealPrice,
    DistanceRate,
    Guide,
    Hotel,
    Poi,
    RefundPolicy,
    RefundTier,
    RoomType,
    Tag,
)


class RefundTierInline(admin.TabularInline):
    model = RefundTier
    extra = 0


@admin.register(RefundPolicy)
class RefundPolicyAdmin(admin.ModelAdmin):
    list_display = ('name', 'is_default')
    inlines = [RefundTierInline]


@admin.register(RoomType)
class RoomTypeAdmin(admin.ModelAdmin):
    list_display = ('label', 'hotel', 'capacity', 'total_rooms', 'base_nightly_rate', 'is_active')
    list_filter = ('is_active',)


admin.site.register([City, CityMealPrice, DistanceRate, Hotel, Poi, Tag, Guide])
