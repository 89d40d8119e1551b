"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# Control loop timing
# ------------------------------------------------------------------

TICK_PERIOD_MS = 500
MS_PER_HOUR = 3_600_000

# ------------------------------------------------------------------
# Signal publisher properties
# ------------------------------------------------------------------

PROP_EMS_NAME = "EMSName"
PROP_TIME = "Time"
PROP_PRICE = "price"

SIGNAL_PROPERTIES: tuple[str, ...] = (PROP_EMS_NAME, PROP_TIME, PROP_PRICE)

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1
UINT32_MAX = 2**32 - 1

# ------------------------------------------------------------------
# Published device properties
# ------------------------------------------------------------------

PROP_DEVICE_NAME = "DeviceName"
PROP_PATH = "Path"
PROP_IMPORT_POWER = "ImportPower"
PROP_EXPORT_POWER = "ExportPower"
PROP_IMPORT_ENERGY = "ImportEnergy"
PROP_EXPORT_ENERGY = "ExportEnergy"
