# ==================== UTILS/DISTANCE_CALCULATOR.PY ====================
from geopy.distance import geodesic


class DistanceCalculator:
    """Calculate distance between a user and parking lots"""

    @staticmethod
    def get_distance_km(lat1, lng1, lat2, lng2):
        """Get distance in kilometers"""
        coord1 = (lat1, lng1)
        coord2 = (lat2, lng2)
        return geodesic(coord1, coord2).km

    @staticmethod
    def lots_within_radius(lots, latitude, longitude, radius_km):
        """Return (lot, distance_km) pairs inside radius, nearest first.

        Lots without coordinates are skipped.
        """
        nearby = []
        for lot in lots:
            if lot.latitude is None or lot.longitude is None:
                continue
            distance = DistanceCalculator.get_distance_km(
                latitude, longitude, lot.latitude, lot.longitude
            )
            if distance <= radius_km:
                nearby.append((lot, round(distance, 2)))

        nearby.sort(key=lambda pair: pair[1])
        return nearby
