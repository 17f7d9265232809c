# accounts/permission_defaults.py

ROLE_DEFAULTS = {
    "OWNER": {
        "accounting.transactions.view",
        "accounting.transactions.create",
        "accounting.transactions.edit",
        "accounting.transactions.delete",
        "accounting.transactions.confirm",
        "accounting.transactions.cancel",

        "accounting.cash.view",
        "accounting.stock.view",
        "accounting.counterparties.view",
        "accounting.dividends.view",
        "accounting.salary.view",

        "accounting.projections.manage",
    },
    "ADMIN": {
        "accounting.transactions.view",
        "accounting.transactions.create",
        "accounting.transactions.edit",
        "accounting.transactions.delete",
        "accounting.transactions.confirm",
        "accounting.transactions.cancel",

        "accounting.cash.view",
        "accounting.stock.view",
        "accounting.counterparties.view",
        "accounting.dividends.view",
        "accounting.salary.view",
    },
    "ACCOUNTANT": {
        "accounting.transactions.view",
        "accounting.transactions.create",
        "accounting.transactions.edit",
        "accounting.transactions.confirm",

        "accounting.cash.view",
        "accounting.stock.view",
        "accounting.counterparties.view",
    },
    "VIEWER": {
        "accounting.transactions.view",

        "accounting.cash.view",
        "accounting.stock.view",
        "accounting.counterparties.view",
    },
}


def all_permission_codes() -> set[str]:
    codes: set[str] = set()
    for s in ROLE_DEFAULTS.values():
        codes |= set(s)
    return codes
