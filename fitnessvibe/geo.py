import math

EARTH_RADIUS_M = 6371000


def haversine_m(lat1, lon1, lat2, lon2):
    """Great-circle distance in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = (math.sin(d_phi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2)
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def route_statistics(points):
    """Distance, speed and elevation figures for an ordered list of RoutePoints."""
    stats = {
        "point_count": len(points),
        "total_distance_m": 0.0,
        "average_speed": None,
        "max_speed": None,
        "min_elevation": None,
        "max_elevation": None,
        "elevation_gain": None,
    }
    if not points:
        return stats

    for prev, cur in zip(points, points[1:]):
        stats["total_distance_m"] += haversine_m(prev.latitude, prev.longitude, cur.latitude, cur.longitude)
    stats["total_distance_m"] = round(stats["total_distance_m"], 2)

    speeds = [p.speed for p in points if p.speed is not None]
    if speeds:
        stats["average_speed"] = round(sum(speeds) / len(speeds), 3)
        stats["max_speed"] = max(speeds)

    elevations = [p.elevation for p in points if p.elevation is not None]
    if elevations:
        stats["min_elevation"] = min(elevations)
        stats["max_elevation"] = max(elevations)
        gain = 0.0
        for prev, cur in zip(points, points[1:]):
            if prev.elevation is not None and cur.elevation is not None and cur.elevation > prev.elevation:
                gain += cur.elevation - prev.elevation
        stats["elevation_gain"] = round(gain, 2)
    return stats
