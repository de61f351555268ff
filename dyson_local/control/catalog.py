""" Static registry of the known dyson product families and their capabilities

The family code (product type) reported by the cloud account, e.g. '438', selects the entry.
Lookups never raise: unknown codes give None, or the conservative DEFAULT_CAPABILITIES.
"""
from .model import CapabilityProfile, DeviceModel, DeviceSeries, DEFAULT_CAPABILITIES

PURE_COOL_BASE = CapabilityProfile(
    fan=True,
    oscillation=True,
    auto_mode=True,
    night_mode=True,
    continuous_monitoring=True,
    temperature_sensor=True,
    humidity_sensor=True,
    air_quality_sensor=True,
    hepa_filter=True,
    carbon_filter=True,
)

# older Link generation: single pact/vact index readings
PURE_COOL_LINK = PURE_COOL_BASE._replace(basic_air_quality_sensor=True)
PURE_COOL_JET = PURE_COOL_BASE._replace(front_airflow=True)
PURE_COOL_NO_JET = PURE_COOL_BASE
PURE_COOL_FORMALDEHYDE = PURE_COOL_JET._replace(no2_sensor=True)

HOT_COOL_LINK = PURE_COOL_BASE._replace(front_airflow=True, heating=True, basic_air_quality_sensor=True)
HOT_COOL_JET = PURE_COOL_BASE._replace(front_airflow=True, heating=True)
HOT_COOL_NO_JET = PURE_COOL_BASE._replace(heating=True)
HOT_COOL_FORMALDEHYDE = HOT_COOL_JET._replace(no2_sensor=True)

HUMIDIFY_COOL = PURE_COOL_BASE._replace(front_airflow=True, humidifier=True)
HUMIDIFY_COOL_FORMALDEHYDE = HUMIDIFY_COOL._replace(no2_sensor=True)

BIG_QUIET = PURE_COOL_BASE._replace(oscillation=False, no2_sensor=True)


DEVICE_CATALOG = (
    DeviceModel('475', 'Dyson Pure Cool Link Tower', 'TP02', DeviceSeries.PURE_COOL_LINK, PURE_COOL_LINK),
    DeviceModel('469', 'Dyson Pure Cool Link Desk', 'DP01', DeviceSeries.PURE_COOL_LINK, PURE_COOL_LINK),

    DeviceModel('438', 'Dyson Pure Cool Tower', 'TP04', DeviceSeries.PURE_COOL, PURE_COOL_JET),
    DeviceModel('438E', 'Dyson Purifier Cool', 'TP07', DeviceSeries.PURE_COOL, PURE_COOL_JET),
    DeviceModel('438K', 'Dyson Purifier Cool Formaldehyde', 'TP09', DeviceSeries.PURE_COOL,
                PURE_COOL_FORMALDEHYDE, formaldehyde=True),
    DeviceModel('438M', 'Dyson Purifier Cool', 'TP11', DeviceSeries.PURE_COOL, PURE_COOL_NO_JET),
    DeviceModel('520', 'Dyson Pure Cool Desk', 'DP04', DeviceSeries.PURE_COOL, PURE_COOL_JET),

    DeviceModel('455', 'Dyson Pure Hot+Cool Link', 'HP02', DeviceSeries.HOT_COOL_LINK, HOT_COOL_LINK),

    DeviceModel('527', 'Dyson Pure Hot+Cool', 'HP04', DeviceSeries.HOT_COOL, HOT_COOL_JET),
    DeviceModel('358K', 'Dyson Pure Hot+Cool Cryptomic', 'HP06', DeviceSeries.HOT_COOL, HOT_COOL_JET),
    DeviceModel('527E', 'Dyson Purifier Hot+Cool', 'HP07', DeviceSeries.HOT_COOL, HOT_COOL_JET),
    DeviceModel('527K', 'Dyson Purifier Hot+Cool Formaldehyde', 'HP09', DeviceSeries.HOT_COOL,
                HOT_COOL_FORMALDEHYDE, formaldehyde=True),
    DeviceModel('527M', 'Dyson Purifier Hot+Cool', 'HP11', DeviceSeries.HOT_COOL, HOT_COOL_NO_JET),

    DeviceModel('358', 'Dyson Pure Humidify+Cool', 'PH01', DeviceSeries.HUMIDIFY_COOL, HUMIDIFY_COOL),
    DeviceModel('520E', 'Dyson Pure Humidify+Cool', 'PH02', DeviceSeries.HUMIDIFY_COOL, HUMIDIFY_COOL),
    DeviceModel('358H', 'Dyson Purifier Humidify+Cool', 'PH03', DeviceSeries.HUMIDIFY_COOL, HUMIDIFY_COOL),
    DeviceModel('358J', 'Dyson Purifier Humidify+Cool', 'PH03', DeviceSeries.HUMIDIFY_COOL, HUMIDIFY_COOL),
    DeviceModel('358E', 'Dyson Purifier Humidify+Cool Formaldehyde', 'PH04', DeviceSeries.HUMIDIFY_COOL,
                HUMIDIFY_COOL_FORMALDEHYDE, formaldehyde=True),
    DeviceModel('520F', 'Dyson Purifier Humidify+Cool Formaldehyde', 'PH04', DeviceSeries.HUMIDIFY_COOL,
                HUMIDIFY_COOL_FORMALDEHYDE, formaldehyde=True),

    DeviceModel('664', 'Dyson Purifier Big+Quiet', 'BP02', DeviceSeries.BIG_QUIET, BIG_QUIET),
    DeviceModel('664B', 'Dyson Purifier Big+Quiet Formaldehyde', 'BP03', DeviceSeries.BIG_QUIET,
                BIG_QUIET, formaldehyde=True),
    DeviceModel('664E', 'Dyson Purifier Big+Quiet Formaldehyde', 'BP04', DeviceSeries.BIG_QUIET,
                BIG_QUIET, formaldehyde=True),
    DeviceModel('664F', 'Dyson Purifier Big+Quiet', 'BP06', DeviceSeries.BIG_QUIET, BIG_QUIET),
)

_BY_PRODUCT_TYPE = {model.product_type: model for model in DEVICE_CATALOG}


def get_device_model(product_type):
    """ The DeviceModel for the family code, None when unknown
    """
    return _BY_PRODUCT_TYPE.get(product_type)


def is_product_type_supported(product_type) -> bool:
    return product_type in _BY_PRODUCT_TYPE


def get_capabilities(product_type) -> CapabilityProfile:
    model = _BY_PRODUCT_TYPE.get(product_type)
    return model.capabilities if model else DEFAULT_CAPABILITIES


def get_model_name(product_type) -> str:
    """ e.g. "Dyson Pure Cool Tower (TP04)", or "Dyson Device (<code>)" when unknown
    """
    model = _BY_PRODUCT_TYPE.get(product_type)
    return model.display_name if model else f"Dyson Device ({product_type})"


def get_supported_product_types():
    return [model.product_type for model in DEVICE_CATALOG]


def get_product_type_display_names():
    """ family code -> "<model_code> - <model_name>", in catalog order
    """
    return {model.product_type: f"{model.model_code} - {model.model_name}" for model in DEVICE_CATALOG}


def get_models_by_series(series: DeviceSeries):
    series = DeviceSeries(series)
    return [model for model in DEVICE_CATALOG if model.series == series]


def get_heating_models():
    return [model for model in DEVICE_CATALOG if model.capabilities.heating]


def get_humidifier_models():
    return [model for model in DEVICE_CATALOG if model.capabilities.humidifier]
