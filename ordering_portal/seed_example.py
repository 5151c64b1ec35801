from decimal import Decimal

from sqlalchemy import select

from ordering_portal.config import settings
from ordering_portal.db import SessionLocal
from ordering_portal.models import Distributor, Product, Store, User, UserRole
from ordering_portal.security.passwords import hash_password


STORES = [
    {'name': 'Hyannis', 'code': 'HYA', 'address': '1 Main St', 'city': 'Hyannis', 'state': 'MA', 'phone': '508-555-0101'},
    {'name': 'Falmouth', 'code': 'FAL', 'address': '20 Palmer Ave', 'city': 'Falmouth', 'state': 'MA', 'phone': '508-555-0102'},
    {'name': 'Framingham', 'code': 'FLM', 'address': '300 Union Ave', 'city': 'Framingham', 'state': 'MA', 'phone': '508-555-0103'},
    {'name': 'Leominster', 'code': 'LEO', 'address': '45 Central St', 'city': 'Leominster', 'state': 'MA', 'phone': '978-555-0104'},
    {'name': 'Stoughton', 'code': 'STU', 'address': '12 Washington St', 'city': 'Stoughton', 'state': 'MA', 'phone': '781-555-0105'},
]

# Store users, keyed by store code.
STORE_USERS = {'FAL': 'gol.fal', 'FLM': 'gol.flm', 'LEO': 'gol.leo', 'STU': 'gol.stu'}


def _get_or_create_store(db, data: dict) -> Store:
    store = db.execute(select(Store).where(Store.code == data['code'])).scalar_one_or_none()
    if not store:
        store = Store(active=True, **data)
        db.add(store)
        db.flush()
    return store


def _ensure_user(db, username: str, password: str, **fields) -> None:
    if db.execute(select(User).where(User.username == username)).scalar_one_or_none():
        return
    db.add(User(username=username, password_hash=hash_password(password), active=True, **fields))


def seed() -> None:
    with SessionLocal() as db:
        stores = {data['code']: _get_or_create_store(db, data) for data in STORES}
        main_store = stores['HYA']
        if main_store.id != settings.main_store_id:
            print(f'Warning: Hyannis got id {main_store.id}; set MAIN_STORE_ID={main_store.id}')

        distributor = db.execute(select(Distributor).where(Distributor.code == 'DEMO')).scalar_one_or_none()
        if not distributor:
            distributor = Distributor(
                name='Demo Distributor',
                code='DEMO',
                contact='Sales Desk',
                phone='617-555-0199',
                email='orders@demo-distributor.example',
                active=True,
            )
            db.add(distributor)
            db.flush()

        if not db.execute(select(Product).where(Product.distributor_id == distributor.id)).first():
            db.add_all(
                [
                    Product(
                        distributor_id=distributor.id,
                        item_code='1001',
                        name='Arroz Tipo 1 5kg',
                        unit_price=Decimal('18.90'),
                        box_price=Decimal('105.00'),
                        box_quantity=6,
                        unit='un',
                    ),
                    Product(
                        distributor_id=distributor.id,
                        item_code='1002',
                        name='Feijao Preto 1kg',
                        unit_price=Decimal('7.49'),
                        box_price=Decimal('85.00'),
                        box_quantity=12,
                        unit='un',
                    ),
                ]
            )

        _ensure_user(db, 'gol', 'admin123', role=UserRole.SUPERMARKET, store_id=main_store.id)
        for code, username in STORE_USERS.items():
            _ensure_user(db, username, 'admin123', role=UserRole.SUPERMARKET, store_id=stores[code].id)
        _ensure_user(db, 'demo.distributor', 'distpass', role=UserRole.DISTRIBUTOR, distributor_id=distributor.id)

        db.commit()


if __name__ == '__main__':
    seed()
