import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from curuza.domain.models import Actor  # noqa: E402

ADMIN = Actor(user_id="admin-1", role="admin", email="admin@example.com")
USER = Actor(user_id="user-1", role="user", email="user@example.com")
OTHER = Actor(user_id="user-2", role="user", email="other@example.com")


def make_container(tmp_path: Path, name: str = "t.db"):
    from curuza.application.container import build_container

    return build_container(tmp_path / name)


def new_product(c, name="Widget", stock=10, purchase="60", sale="100", actor=ADMIN):
    return c.inventory.create_product(
        name=name,
        purchase_price=purchase,
        sale_price=sale,
        initial_stock=stock,
        additional_costs=[],
        actor=actor,
    )


def count_rows(repo, table: str, where: str = "", params: tuple = ()) -> int:
    conn = repo._conn()
    cur = conn.cursor()
    cur.execute(f"SELECT COUNT(*) FROM {table} {where}", params)
    n = int(cur.fetchone()[0])
    conn.close()
    return n
