"""Interactive Folium map of a collection task."""
from typing import Optional

import folium
from loguru import logger

from models.dispatch_entities import GeoPoint, Task
from routing.route_builder import DEPOT_ID


class FoliumMapGenerator:
    def __init__(self):
        self.route_color = '#0000FF'
        self.path_color = '#FF8000'

    def create_task_map(self, task: Task, worker_location: Optional[GeoPoint] = None,
                        zoom_start: int = 14) -> folium.Map:
        """Route stops in visiting order, the road path if known, and the worker's last ping."""
        points = task.route or ([worker_location] if worker_location else [])
        if points:
            center = [sum(p.latitude for p in points) / len(points),
                      sum(p.longitude for p in points) / len(points)]
        else:
            center = [0.0, 0.0]

        m = folium.Map(location=center, zoom_start=zoom_start, tiles='OpenStreetMap')

        stops_layer = folium.FeatureGroup(name=f"🗑️ Stops ({len(task.route) - 1})", show=True)
        for order, (stop_id, point) in enumerate(zip(task.stop_ids, task.route)):
            if stop_id == DEPOT_ID:
                folium.Marker(
                    location=[point.latitude, point.longitude],
                    popup=f"🏁 Start - {task.assigned_worker_id}",
                    icon=folium.Icon(color='green', icon='play')
                ).add_to(stops_layer)
            else:
                folium.CircleMarker(
                    location=[point.latitude, point.longitude],
                    radius=6,
                    popup=f"Stop {order}: {stop_id}",
                    color=self.route_color,
                    fill=True,
                    fillOpacity=0.8
                ).add_to(stops_layer)

        if len(task.route) >= 2:
            folium.PolyLine(
                locations=[[p.latitude, p.longitude] for p in task.route],
                color=self.route_color,
                weight=4,
                opacity=0.7,
                tooltip=f"{task.id}: {task.progress:.0f}% done, ETA {task.eta}"
            ).add_to(stops_layer)
        stops_layer.add_to(m)

        if len(task.path) >= 2:
            path_layer = folium.FeatureGroup(name="🚛 Road path", show=True)
            folium.PolyLine(
                locations=[[p.latitude, p.longitude] for p in task.path],
                color=self.path_color,
                weight=5,
                opacity=0.8
            ).add_to(path_layer)
            path_layer.add_to(m)

        if worker_location is not None:
            folium.Marker(
                location=[worker_location.latitude, worker_location.longitude],
                popup=f"Worker {task.assigned_worker_id}",
                icon=folium.Icon(color='red', icon='user')
            ).add_to(m)

        folium.LayerControl(position='topright', collapsed=False).add_to(m)
        logger.info(f"Created Folium map for task {task.id}")
        return m

    def render_html(self, map_obj: folium.Map) -> str:
        return map_obj.get_root().render()
