"""
Configuration settings for Site Suitability
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import os

from .exceptions import ConfigurationError


@dataclass
class GeometryConfig:
    """Geometry repair and subtraction tolerances (meters unless noted)"""
    # Parts at or below this area are discarded after subtraction
    min_fragment_area_m2: float = 100.0

    # Degenerate rings are replaced by a square of this half-size
    placeholder_half_size_m: float = 10.0
    placeholder_half_size_deg: float = 0.0001

    # Difference fallbacks
    epsilon_buffer_m: float = 0.01
    simplify_tolerance_m: float = 0.1
    repair_simplify_tolerance_m: float = 0.1
    repair_simplify_tolerance_deg: float = 0.000001
    circle_min_radius_m: float = 50.0
    circle_radius_multiplier: float = 1.5
    aggressive_radius_multiplier: float = 2.0
    aggressive_fallback_ratio: float = 0.8
    base_expansion_m: float = 5.0
    multi_circle_max_vertices: int = 8
    multi_circle_radius_ratio: float = 0.7
    multi_circle_min_reduction: float = 0.01

    # Fraction of the smaller operand assumed removed when every exact strategy fails
    area_estimate_ratio: float = 0.1

    # Developable area layer handling
    biodiversity_batch_size: int = 5
    biodiversity_cutout_expansion_m: float = 1.0
    biodiversity_proximity_m: float = 10.0
    biodiversity_base_buffer_m: float = 0.5
    power_line_buffer_m: float = 10.0
    envelope_padding_ratio: float = 2.0

    # Local projected CRS used for metric work. None => site-centred AEQD
    local_crs: Optional[str] = None


@dataclass
class ScoringConfig:
    """Criterion thresholds"""
    flood_near_m: float = 500.0
    bushfire_near_m: float = 100.0
    contamination_impacted_m: float = 20.0
    contamination_near_m: float = 100.0
    udp_near_m: float = 800.0
    udp_far_m: float = 1600.0
    road_buffer_m: float = 20.0
    road_min_lanes: int = 2
    utility_buffer_m: float = 20.0
    tec_high_coverage_pct: float = 50.0
    biodiversity_high_coverage_pct: float = 50.0
    geoscape_high_coverage_pct: float = 20.0
    regularity_high_ratio: float = 0.75
    regularity_medium_ratio: float = 0.60
    regularity_rectangular_min_ratio: float = 0.4
    regularity_angle_tolerance_deg: float = 15.0
    developable_area_large_sqm: float = 4000.0
    developable_area_medium_sqm: float = 2000.0
    contour_low_change_m: float = 5.0
    contour_medium_change_m: float = 10.0
    zoning_fsr_threshold: float = 1.0
    zoning_hob_threshold_m: float = 10.0
    site_remediation_score: int = 2

    # Composite maximum (16 criteria x 3)
    max_total: int = 48

    high_zones: List[str] = field(default_factory=lambda: [
        "2(a)", "A", "B", "B1", "B2", "B4", "E1", "MU", "MU1",
        "R", "R1", "R2", "R3", "R4", "RU5",
    ])
    medium_zones: List[str] = field(default_factory=lambda: [
        "SP1", "SP2", "SP3",
    ])


@dataclass
class LayerEndpoint:
    """ArcGIS REST layer query endpoint"""
    url: str
    where: str = "1=1"
    out_fields: str = "*"


@dataclass
class APIConfig:
    """API endpoints and configuration"""
    layers: Dict[str, LayerEndpoint] = field(default_factory=lambda: {
        "biodiversity": LayerEndpoint(
            url="https://www.lmbc.nsw.gov.au/arcgis/rest/services/BV/BiodiversityValues/MapServer/0/query",
        ),
        "easements": LayerEndpoint(
            url="https://mapuat3.environment.nsw.gov.au/arcgis/rest/services/Common/Admin_3857/MapServer/25/query",
        ),
        "power_lines": LayerEndpoint(
            url="https://services.ga.gov.au/gis/rest/services/Foundation_Electricity_Infrastructure/MapServer/2/query",
        ),
        "flood": LayerEndpoint(
            url="https://portal.data.nsw.gov.au/arcgis/rest/services/Hosted/nsw_1aep_flood_extents/FeatureServer/0/query",
        ),
        "excluded_zoning": LayerEndpoint(
            url="https://mapprod3.environment.nsw.gov.au/arcgis/rest/services/Planning/EPI_Primary_Planning_Layers/MapServer/2/query",
            where="SYM_CODE IN ('IN3','IN4','E3','E4','RU3','C1','C2','C3','W1','W2','W3')",
        ),
        # Scoring layers
        "zoning": LayerEndpoint(
            url="https://mapprod3.environment.nsw.gov.au/arcgis/rest/services/Planning/EPI_Primary_Planning_Layers/MapServer/2/query",
        ),
        "heritage": LayerEndpoint(
            url="https://mapprod3.environment.nsw.gov.au/arcgis/rest/services/Planning/EPI_Primary_Planning_Layers/MapServer/0/query",
        ),
        "acid_sulfate_soils": LayerEndpoint(
            url="https://mapprod3.environment.nsw.gov.au/arcgis/rest/services/Planning/EPI_Planning_Layers/MapServer/10/query",
        ),
        "bushfire": LayerEndpoint(
            url="https://mapprod3.environment.nsw.gov.au/arcgis/rest/services/Planning/Protection/MapServer/1/query",
        ),
        "contamination": LayerEndpoint(
            url="https://mapprod2.environment.nsw.gov.au/arcgis/rest/services/EPA/Contaminated_land_notified_sites/MapServer/0/query",
        ),
        "tec": LayerEndpoint(
            url="https://mapprod1.environment.nsw.gov.au/arcgis/rest/services/EDP/TECs_GreaterSydney/MapServer/0/query",
        ),
        "roads": LayerEndpoint(
            url="https://portal.data.nsw.gov.au/arcgis/rest/services/RoadSegment/MapServer/0/query",
        ),
        "udp": LayerEndpoint(
            url="https://mapprod1.environment.nsw.gov.au/arcgis/rest/services/Planning/UDP/MapServer/0/query",
        ),
        "ptal": LayerEndpoint(
            url="https://mapprod3.environment.nsw.gov.au/arcgis/rest/services/Planning/PTAL/MapServer/0/query",
        ),
        "geoscape": LayerEndpoint(
            url="https://portal.data.nsw.gov.au/arcgis/rest/services/Hosted/BLDS_Mar24_Geoscape/FeatureServer/0/query",
        ),
        "contours": LayerEndpoint(
            url="https://spatial.industry.nsw.gov.au/arcgis/rest/services/PUBLIC/Contours/MapServer/0/query",
        ),
        "water_mains": LayerEndpoint(
            url="https://maps.six.nsw.gov.au/arcgis/rest/services/public/NSW_Water/MapServer/1/query",
        ),
        "sewer_mains": LayerEndpoint(
            url="https://maps.six.nsw.gov.au/arcgis/rest/services/public/NSW_Sewer/MapServer/0/query",
        ),
        "power_network": LayerEndpoint(
            url="https://services-ap1.arcgis.com/ug6sGLFkytbXYo4f/arcgis/rest/services/LUAL_Network_LV_Public/FeatureServer/0/query",
        ),
    })

    # Zoning codes that disqualify land from development
    excluded_zone_codes: List[str] = field(default_factory=lambda: [
        "IN3", "IN4", "E3", "E4", "RU3", "C1", "C2", "C3", "W1", "W2", "W3",
    ])

    # Optional token for secured services (read from ARCGIS_TOKEN)
    token: Optional[str] = field(default_factory=lambda: os.getenv("ARCGIS_TOKEN"))

    # Request settings
    fetch_deadline_s: float = 10.0
    request_timeout: int = 30
    max_retries: int = 3
    retry_delay: float = 1.0
    min_request_interval: float = 0.5

    # Cached layer responses older than this are refetched. None => never expire
    cache_ttl_s: Optional[float] = 7 * 24 * 3600

    # User agent for API requests
    user_agent: str = "SiteSuitability/1.0"


@dataclass
class PipelineConfig:
    """Pipeline configuration"""
    # Output settings
    output_dir: str = "output"

    # Scoring layers fetched around the developable area (meters)
    scoring_search_radius_m: float = 2000.0

    # Run scorers concurrently in worker threads
    concurrent_scoring: bool = False

    api: APIConfig = field(default_factory=APIConfig)
    geometry: GeometryConfig = field(default_factory=GeometryConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)

    # Coordinate system
    source_crs: str = "EPSG:4326"  # WGS84 lon/lat


# Global config instance
config = PipelineConfig()


def get_config() -> PipelineConfig:
    """Get global configuration"""
    return config


def validate_config(config: PipelineConfig) -> None:
    """
    Validate that all required configuration values are set.
    Raises ConfigurationError (a ValueError) if any value is missing or invalid.
    """
    errors = []

    geometry = getattr(config, "geometry", None)
    if geometry is None:
        errors.append("geometry configuration is required but not set")
    else:
        if geometry.min_fragment_area_m2 < 0:
            errors.append(f"geometry.min_fragment_area_m2 must be >= 0, got {geometry.min_fragment_area_m2}")
        if not 0 <= geometry.area_estimate_ratio <= 1:
            errors.append(f"geometry.area_estimate_ratio must be between 0 and 1, got {geometry.area_estimate_ratio}")
        if geometry.biodiversity_batch_size < 1:
            errors.append(f"geometry.biodiversity_batch_size must be positive, got {geometry.biodiversity_batch_size}")
        if geometry.circle_min_radius_m <= 0:
            errors.append(f"geometry.circle_min_radius_m must be positive, got {geometry.circle_min_radius_m}")

    scoring = getattr(config, "scoring", None)
    if scoring is None:
        errors.append("scoring configuration is required but not set")
    else:
        if scoring.max_total <= 0:
            errors.append(f"scoring.max_total must be positive, got {scoring.max_total}")
        if scoring.udp_near_m > scoring.udp_far_m:
            errors.append("scoring.udp_near_m must not exceed scoring.udp_far_m")
        if scoring.contamination_impacted_m > scoring.contamination_near_m:
            errors.append("scoring.contamination_impacted_m must not exceed scoring.contamination_near_m")
        if scoring.developable_area_medium_sqm > scoring.developable_area_large_sqm:
            errors.append("scoring.developable_area_medium_sqm must not exceed scoring.developable_area_large_sqm")

    api = getattr(config, "api", None)
    if api is None:
        errors.append("api configuration is required but not set")
    else:
        if api.fetch_deadline_s <= 0:
            errors.append(f"api.fetch_deadline_s must be positive, got {api.fetch_deadline_s}")
        if api.cache_ttl_s is not None and api.cache_ttl_s < 0:
            errors.append(f"api.cache_ttl_s must be non-negative, got {api.cache_ttl_s}")
        if api.max_retries < 1:
            errors.append(f"api.max_retries must be at least 1, got {api.max_retries}")
        for name, endpoint in api.layers.items():
            if not endpoint.url:
                errors.append(f"api.layers[{name}].url is required but not set")

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(error_msg)
