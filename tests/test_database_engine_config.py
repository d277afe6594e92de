def test_get_engine_kwargs_sqlite_has_check_same_thread():
    """Test SQLite engines allow cross-thread use."""
    from daygrid.database import database as db

    kwargs = db.get_engine_kwargs("sqlite:///./daygrid.db")
    assert kwargs["connect_args"]["check_same_thread"] is False
    # SQLite should not require pool sizing knobs.
    assert "pool_size" not in kwargs
    assert kwargs["pool_pre_ping"] is True


def test_get_engine_kwargs_postgres_reads_pool_env(monkeypatch):
    """Test pool settings come from the environment."""
    from daygrid.database import database as db

    monkeypatch.setenv("DB_POOL_SIZE", "7")
    monkeypatch.setenv("DB_MAX_OVERFLOW", "3")
    monkeypatch.setenv("DB_POOL_TIMEOUT_SEC", "15")

    kwargs = db.get_engine_kwargs("postgresql+psycopg://u:p@localhost:5432/db")
    assert "connect_args" not in kwargs
    assert kwargs["pool_size"] == 7
    assert kwargs["max_overflow"] == 3
    assert kwargs["pool_timeout"] == 15


def test_ensure_legacy_schema_backfills_slot_column(tmp_path):
    """Legacy SQLite DBs kept the slot inside the description; it becomes a column."""
    from sqlalchemy import create_engine, text
    from daygrid.database import database as db

    db_path = tmp_path / "legacy.db"
    url = f"sqlite:///{db_path}"
    engine = create_engine(url, connect_args={"check_same_thread": False})

    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE timetable_entries ("
                "id VARCHAR PRIMARY KEY,"
                "owner_id VARCHAR,"
                "day DATE,"
                "description VARCHAR,"
                "completed BOOLEAN"
                ")"
            )
        )
        conn.execute(
            text(
                "INSERT INTO timetable_entries (id, owner_id, day, description, completed) "
                "VALUES ('e1', 'o1', '2024-01-01', '[9:00 AM - 10:00 AM] Standup', 0), "
                "('e2', 'o1', '2024-01-01', 'No prefix', 0)"
            )
        )

    db.ensure_legacy_schema_compat(engine_override=engine, database_url_override=url)

    raw = engine.raw_connection()
    try:
        assert db._sqlite_table_has_column(raw, "timetable_entries", "slot") is True
    finally:
        raw.close()

    with engine.connect() as conn:
        rows = dict(
            (row[0], (row[1], row[2]))
            for row in conn.execute(text("SELECT id, slot, description FROM timetable_entries"))
        )
    assert rows["e1"] == ("9:00 AM - 10:00 AM", "Standup")
    assert rows["e2"] == ("", "No prefix")


def test_ensure_legacy_schema_skips_non_sqlite():
    """Test the legacy schema patch only runs on SQLite."""
    from daygrid.database import database as db

    # Returns before touching any engine.
    db.ensure_legacy_schema_compat(engine_override=object(), database_url_override="postgresql://u:p@h/db")
