"""Batch writer tests."""

import polars as pl


class TestRecordsFrame:
    def test_schema_follows_model(self):
        from cyan.persistence.models import PostAgentRecord
        from cyan.persistence.writers import polars_schema

        schema = polars_schema(PostAgentRecord)

        assert schema["agent_id"] == pl.Int64
        assert schema["prototype"] == pl.Utf8
        assert schema["exit_time"] == pl.Int64

    def test_accepts_models_and_dicts(self):
        from cyan.persistence.models import PowerRecord
        from cyan.persistence.writers import records_frame

        frame = records_frame(
            PowerRecord,
            [
                PowerRecord(sim_id="aa", agent_id=1, time=0, value=1.5),
                {"sim_id": "aa", "agent_id": 2, "time": 0, "value": 2.5},
            ],
        )

        assert frame.height == 2
        assert frame["value"].to_list() == [1.5, 2.5]


class TestWriteRecords:
    def test_writes_rows(self, db_path):
        from cyan.persistence.connection import DatabaseManager
        from cyan.persistence.models import PostStateRecord
        from cyan.persistence.writers import write_records
        from datetime import datetime

        with DatabaseManager(db_path) as manager:
            manager.initialize_schema()
            count = write_records(
                manager.conn,
                PostStateRecord,
                [PostStateRecord(sim_id="aa", processed_at=datetime(2024, 1, 1), num_resources=3)],
            )
            row = manager.conn.execute(
                "SELECT sim_id, num_resources, num_inventories FROM post_state"
            ).fetchone()

        assert count == 1
        assert row == ("aa", 3, 0)

    def test_empty_batch_writes_nothing(self, db_path):
        from cyan.persistence.connection import DatabaseManager
        from cyan.persistence.models import ResourceRecord
        from cyan.persistence.writers import write_records

        with DatabaseManager(db_path) as manager:
            manager.initialize_schema()
            assert write_records(manager.conn, ResourceRecord, []) == 0

    def test_nullable_column(self, db_path):
        from cyan.persistence.connection import DatabaseManager
        from cyan.persistence.models import PostAgentRecord
        from cyan.persistence.writers import write_records

        with DatabaseManager(db_path) as manager:
            manager.initialize_schema()
            write_records(
                manager.conn,
                PostAgentRecord,
                [
                    {
                        "sim_id": "aa", "agent_id": 1, "kind": "Facility", "spec": "s",
                        "prototype": "p", "parent_id": -1, "lifetime": -1,
                        "enter_time": 0, "exit_time": None,
                    }
                ],
            )
            (exit_time,) = manager.conn.execute("SELECT exit_time FROM post_agents").fetchone()

        assert exit_time is None
