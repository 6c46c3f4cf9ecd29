"""Tests for GeoJSON, CSV and map exports."""
import json
from datetime import datetime, timedelta

import pandas as pd

from models.dispatch_entities import (
    CollectionGroup, GeoPoint, GroupStatus, Task, TaskStatus, Worker,
)
from visualization.export_to_geojson import DispatchExporter, route_length_km
from visualization.folium_map import FoliumMapGenerator

START = datetime(2024, 6, 1, 8, 0)


class TestDispatchExporter:
    def setup_method(self):
        self.groups = [
            CollectionGroup(id="g1", centroid=GeoPoint(12.97, 77.59), created_at=START, report_count=3,
                            member_report_ids=["r1", "r2", "r3"]),
            CollectionGroup(id="g2", centroid=GeoPoint(12.98, 77.60), created_at=START,
                            status=GroupStatus.SCHEDULED, task_id="t1"),
        ]
        self.tasks = [
            Task(id="t1", group_id="g2", assigned_worker_id="w1",
                 route=[GeoPoint(12.97, 77.59), GeoPoint(12.98, 77.60)], stop_ids=["depot", "r4"],
                 start_time=START, status=TaskStatus.NOT_COLLECTING, progress=100.0, eta="arriving",
                 end_time=START + timedelta(minutes=30)),
            Task(id="t2", group_id="g3", assigned_worker_id="w2", route=[GeoPoint(0, 0)],
                 stop_ids=["depot"], start_time=START),
        ]

    def test_groups_geojson(self):
        gdf = DispatchExporter().prepare_groups_geojson(self.groups)

        assert len(gdf) == 2
        assert gdf.crs.to_string() == "EPSG:4326"
        assert list(gdf['status']) == ["Open", "Scheduled"]
        assert (gdf.geometry.iloc[0].x, gdf.geometry.iloc[0].y) == (77.59, 12.97)

    def test_empty_groups(self):
        gdf = DispatchExporter().prepare_groups_geojson([])
        assert len(gdf) == 0

    def test_routes_geojson(self):
        gdf = DispatchExporter().prepare_routes_geojson(self.tasks)

        assert list(gdf['num_stops']) == [1, 0]
        assert gdf.geometry.iloc[0].geom_type == "LineString"
        assert gdf['route_km'].iloc[0] == round(route_length_km(self.tasks[0].route), 3)

    def test_summary_csv(self, tmp_path):
        exporter = DispatchExporter(str(tmp_path / "out"))
        exporter.prepare_summary_csv(self.tasks, [Worker(id="w1", name="Ravi")])
        path = exporter.export_summary_csv()

        df = pd.read_csv(path)
        assert list(df['task_id']) == ["t1", "t2"]
        assert df['worker_name'].iloc[0] == "Ravi"
        assert df['duration_min'].iloc[0] == 30.0
        assert pd.isna(df['duration_min'].iloc[1])

    def test_export_geojson_file(self, tmp_path):
        exporter = DispatchExporter(str(tmp_path))
        path = exporter.export_geojson(exporter.prepare_groups_geojson(self.groups), "groups.geojson")

        with open(path, encoding='utf-8') as f:
            data = json.load(f)
        assert [feature['properties']['group_id'] for feature in data['features']] == ["g1", "g2"]


def test_task_map_html():
    task = Task(id="t1", group_id="g1", assigned_worker_id="w1",
                route=[GeoPoint(12.97, 77.59), GeoPoint(12.975, 77.595), GeoPoint(12.98, 77.60)],
                stop_ids=["depot", "r1", "r2"], start_time=START,
                path=[GeoPoint(12.97, 77.59), GeoPoint(12.98, 77.60)])
    generator = FoliumMapGenerator()

    html = generator.render_html(generator.create_task_map(task, GeoPoint(12.972, 77.592)))

    assert "Stop 1: r1" in html
    assert "Worker w1" in html
