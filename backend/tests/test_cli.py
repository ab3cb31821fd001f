"""
CLI command tests.
"""

from telecom_ops.extensions import db
from telecom_ops.models import Article, Client, SaleFlag, User


def test_system_init_creates_director(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['system', 'init'])

    assert result.exit_code == 0, result.output
    assert 'PASS Created user: director' in result.output
    assert db.session.query(User).filter_by(username='director', role='Director').count() == 1

    again = runner.invoke(args=['system', 'init'])
    assert 'already exists' in again.output


def test_seed_demo(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['system', 'seed-demo'])

    assert result.exit_code == 0, result.output
    art = db.session.query(Article).filter_by(code='ART001').one()
    assert art.stock_quantity == 10
    assert db.session.query(Article).filter(Article.stock_quantity.is_(None)).count() == 3
    assert db.session.query(Client).count() == 3
    assert db.session.query(User).filter_by(role='Advisor').count() == 2

    listing = runner.invoke(args=['users', 'list', '--role', 'Advisor'])
    assert 'advisor1' in listing.output
    assert 'director' not in listing.output


def test_anomaly_scan_command(app, db_session, advisor):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['anomalies', 'scan', '--advisor-id', str(advisor.id), '--days', '7'])

    assert result.exit_code == 0, result.output
    assert 'checked 0 sales' in result.output
    assert db.session.query(SaleFlag).count() == 0

    missing = runner.invoke(args=['anomalies', 'scan', '--advisor-id', '4242'])
    assert 'FAIL' in missing.output
