# ruff: noqa: D100, D101, D102, D103, D104, D107, T201
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from immutable import Immutable

from flux_store import (
    BaseAction,
    ConcurrencyPolicy,
    Store,
    create_reducer,
    create_selector,
    on,
)


class Customer(Immutable):
    id: int
    name: str
    active: bool


class CustomersState(Immutable):
    items: tuple[Customer, ...]
    loading: bool
    error: str | None


class SearchState(Immutable):
    query: str
    results: tuple[str, ...]


# Actions <
class LoadCustomersAction(BaseAction, kind='[Customers Page] Load'): ...


class LoadCustomersSuccessAction(BaseAction, kind='[Customers API] Load Success'):
    items: tuple[Customer, ...]


class LoadCustomersFailureAction(BaseAction, kind='[Customers API] Load Failure'):
    message: str


class SearchAction(BaseAction, kind='[Customers Page] Search'):
    query: str


class SearchSuccessAction(BaseAction, kind='[Customers API] Search Success'):
    results: tuple[str, ...]


# >


# Reducers <
customers_reducer = create_reducer(
    CustomersState(items=(), loading=False, error=None),
    on(LoadCustomersAction, lambda state, _: replace(state, loading=True)),
    on(
        LoadCustomersSuccessAction,
        lambda state, action: replace(state, items=action.items, loading=False),
    ),
    on(
        LoadCustomersFailureAction,
        lambda state, action: replace(state, loading=False, error=action.message),
    ),
)

search_reducer = create_reducer(
    SearchState(query='', results=()),
    on(SearchAction, lambda state, action: replace(state, query=action.query)),
    on(
        SearchSuccessAction,
        lambda state, action: replace(state, results=action.results),
    ),
)
# >


class FakeCustomerService:
    customers = (
        Customer(id=1, name='Alan', active=True),
        Customer(id=2, name='Abby', active=False),
        Customer(id=3, name='Bob', active=True),
    )

    async def fetch_all(self: FakeCustomerService) -> tuple[Customer, ...]:
        await asyncio.sleep(0.2)
        return self.customers

    async def search(self: FakeCustomerService, query: str) -> tuple[str, ...]:
        await asyncio.sleep(0.3 if len(query) == 1 else 0.1)
        return tuple(
            customer.name
            for customer in self.customers
            if customer.name.lower().startswith(query)
        )


select_active_names = create_selector(
    lambda state: state.customers.items,
    lambda items: [customer.name for customer in items if customer.active],
)


async def main() -> None:
    service = FakeCustomerService()

    with Store({'customers': customers_reducer, 'search': search_reducer}) as store:
        store.subscribe(lambda state: print('state:', store.serialize_value(state)))

        selection = store.select(select_active_names)
        selection.subscribe(lambda names: print('active customers:', names))

        @store.effects.effect(
            LoadCustomersAction,
            on_error=lambda _, error: LoadCustomersFailureAction(message=str(error)),
        )
        async def load_customers(_: LoadCustomersAction) -> LoadCustomersSuccessAction:
            return LoadCustomersSuccessAction(items=await service.fetch_all())

        # Only the result of the latest query reaches the store
        @store.effects.effect(SearchAction, ConcurrencyPolicy.SWITCH_LATEST)
        async def search(action: SearchAction) -> SearchSuccessAction:
            return SearchSuccessAction(results=await service.search(action.query))

        _ = load_customers, search

        store.dispatch(LoadCustomersAction())
        store.dispatch(SearchAction(query='a'))
        await asyncio.sleep(0.05)
        store.dispatch(SearchAction(query='ab'))

        await asyncio.sleep(0.5)
        print('recomputations:', select_active_names.recomputations)


if __name__ == '__main__':
    logging.basicConfig(level=logging.DEBUG)
    asyncio.run(main())
