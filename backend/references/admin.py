from django.contrib import admin

from .models import CashRegister, Counterparty, Currency, Partner, Product, Service, Warehouse


@admin.register(Currency)
class CurrencyAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "exchange_rate", "decimal_places", "is_default", "is_active")
    list_filter = ("is_active",)


@admin.register(CashRegister)
class CashRegisterAdmin(admin.ModelAdmin):
    list_display = ("name", "currency", "kind", "is_active")
    list_filter = ("kind", "is_active", "currency")


@admin.register(Counterparty)
class CounterpartyAdmin(admin.ModelAdmin):
    list_display = ("name", "kind", "phone", "is_active")
    list_filter = ("kind", "is_active")
    search_fields = ("name", "phone")


@admin.register(Partner)
class PartnerAdmin(admin.ModelAdmin):
    list_display = ("name", "share_percentage", "is_active")


admin.site.register(Warehouse)
admin.site.register(Product)
admin.site.register(Service)
