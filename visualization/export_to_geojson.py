"""Export collection groups and task routes to GeoJSON and a summary CSV."""
import json
import os
from typing import Dict, List

import geopandas as gpd
import pandas as pd
from loguru import logger
from shapely.geometry import LineString, Point

from configurations.config import Config
from models.dispatch_entities import CollectionGroup, GeoPoint, Task, Worker
from routing.geo_math import distance_km


def _line(points: List[GeoPoint]):
    coords = [(p.longitude, p.latitude) for p in points]
    if len(coords) == 1:
        coords = coords * 2
    return LineString(coords) if coords else None


def route_length_km(route: List[GeoPoint]) -> float:
    return sum(distance_km(a, b) for a, b in zip(route, route[1:]))


class DispatchExporter:
    def __init__(self, export_dir: str = None):
        self.groups_gdf = None
        self.routes_gdf = None
        self.summary_df = None
        self.export_dir = export_dir or Config.EXPORT_DIR

    def prepare_groups_geojson(self, groups: List[CollectionGroup]) -> gpd.GeoDataFrame:
        """Groups as points at their centroid."""
        features = [{
            'group_id': group.id,
            'status': group.status.value,
            'report_count': group.report_count,
            'created_at': group.created_at.isoformat(),
            'task_id': group.task_id,
            'geometry': Point(group.centroid.longitude, group.centroid.latitude)
        } for group in groups]

        self.groups_gdf = gpd.GeoDataFrame(features, geometry='geometry', crs='EPSG:4326') \
            if features else gpd.GeoDataFrame(columns=['group_id', 'geometry'], geometry='geometry', crs='EPSG:4326')
        logger.info(f"Prepared {len(features)} groups for export")
        return self.groups_gdf

    def prepare_routes_geojson(self, tasks: List[Task]) -> gpd.GeoDataFrame:
        """Task routes as lines; the road path is used when the optimizer supplied one."""
        features = []
        for task in tasks:
            features.append({
                'task_id': task.id,
                'group_id': task.group_id,
                'worker_id': task.assigned_worker_id,
                'status': task.status.value,
                'progress': round(task.progress, 2),
                'eta': str(task.eta),
                'num_stops': len(task.route) - 1,
                'route_km': round(route_length_km(task.route), 3),
                'geometry': _line(task.path or task.route)
            })

        self.routes_gdf = gpd.GeoDataFrame(features, geometry='geometry', crs='EPSG:4326') \
            if features else gpd.GeoDataFrame(columns=['task_id', 'geometry'], geometry='geometry', crs='EPSG:4326')
        logger.info(f"Prepared {len(features)} routes for export")
        return self.routes_gdf

    def prepare_summary_csv(self, tasks: List[Task], workers: List[Worker]) -> pd.DataFrame:
        worker_names = {worker.id: worker.name for worker in workers}
        rows = []
        for task in tasks:
            duration_min = None
            if task.end_time is not None:
                duration_min = round((task.end_time - task.start_time).total_seconds() / 60, 2)
            rows.append({
                'task_id': task.id,
                'group_id': task.group_id,
                'worker_id': task.assigned_worker_id,
                'worker_name': worker_names.get(task.assigned_worker_id),
                'status': task.status.value,
                'num_stops': len(task.route) - 1,
                'route_km': round(route_length_km(task.route), 3),
                'progress': round(task.progress, 2),
                'start_time': task.start_time.isoformat(),
                'end_time': task.end_time.isoformat() if task.end_time else None,
                'duration_min': duration_min
            })

        self.summary_df = pd.DataFrame(rows, columns=[
            'task_id', 'group_id', 'worker_id', 'worker_name', 'status', 'num_stops',
            'route_km', 'progress', 'start_time', 'end_time', 'duration_min'
        ])
        logger.info(f"Prepared summary for {len(rows)} tasks")
        return self.summary_df

    def to_geojson_dict(self, gdf: gpd.GeoDataFrame) -> Dict:
        return json.loads(gdf.to_json())

    def export_geojson(self, gdf: gpd.GeoDataFrame, filename: str) -> str:
        os.makedirs(self.export_dir, exist_ok=True)
        output_path = os.path.join(self.export_dir, filename)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(gdf.to_json())
        logger.info(f"Exported {len(gdf)} features to {output_path}")
        return output_path

    def export_summary_csv(self, filename: str = "task_summary.csv") -> str:
        if self.summary_df is None:
            raise ValueError("No summary data prepared")

        os.makedirs(self.export_dir, exist_ok=True)
        output_path = os.path.join(self.export_dir, filename)
        self.summary_df.to_csv(output_path, index=False)
        logger.info(f"Exported summary to {output_path}")
        return output_path
