"""
References app - master data read by the ledger engine.

Currencies, cash registers, warehouses, products, counterparties,
partners and services. These are maintained through the Django admin;
the engine only reads them (existence, register currency, currency
precision and rates, partner share percentages).
"""
