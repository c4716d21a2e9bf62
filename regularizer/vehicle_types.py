"""
Vehicle type inference for noisy pairs.

Evidence is tried in order: the catalog's vehicle type, then what the make is
known to build in the reference period, then the shape of the model code.
"""
import re
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from loguru import logger

from regularizer.clients.catalog_client import CatalogSession, ReferenceCatalog
from regularizer.config import MOTORCYCLE_TYPES, PASSENGER_VEHICLE_TYPES, SPECIALIZED_TYPES
from regularizer.models import IdentifierPair, TypeInference, VehicleType
from regularizer.reference_index import ReferenceSet

MOTORCYCLE_MODEL_MARKERS = (
    "CBR", "GSX", "NINJA", "R1250", "R1200", "FZ", "MT-",
    "YZF", "ZX", "VFR", "HAYABUSA", "SUPER", "STREET",
)

_MOTORCYCLE_CODE = re.compile(r"^[A-Z]{2,4}[0-9]{3,4}$")
_PASSENGER_NAME = re.compile(r"^[A-Z]{3,8}$")
_PASSENGER_CODE = re.compile(r"^[A-Z]{1,2}-?[0-9]{1,3}[A-Z]{0,2}$")


def category_group(codes: Iterable[str]) -> VehicleType:
    """Collapse category codes to one vehicle type; passenger codes win."""
    codes = frozenset(c.upper() for c in codes if c)
    if codes & PASSENGER_VEHICLE_TYPES:
        return VehicleType.PASSENGER
    if codes & MOTORCYCLE_TYPES:
        return VehicleType.MOTORCYCLE
    if codes & SPECIALIZED_TYPES:
        return VehicleType.SPECIALIZED
    return VehicleType.UNKNOWN


def looks_like_motorcycle_model(model: str) -> bool:
    upper = model.upper()
    if any(marker in upper for marker in MOTORCYCLE_MODEL_MARKERS):
        return True
    return bool(_MOTORCYCLE_CODE.match(upper))


def is_passenger_model_pattern(model: str) -> bool:
    upper = model.upper()
    return bool(_PASSENGER_NAME.match(upper) or _PASSENGER_CODE.match(upper))


def make_profiles(reference: ReferenceSet) -> Dict[VehicleType, FrozenSet[str]]:
    """Makes seen building each vehicle type in the reference period."""
    profiles: Dict[VehicleType, set] = {t: set() for t in VehicleType}
    for pair in reference:
        codes = frozenset(c.upper() for c in pair.categories)
        make = pair.primary.upper()
        if codes & PASSENGER_VEHICLE_TYPES:
            profiles[VehicleType.PASSENGER].add(make)
        if codes & MOTORCYCLE_TYPES:
            profiles[VehicleType.MOTORCYCLE].add(make)
        if codes & SPECIALIZED_TYPES:
            profiles[VehicleType.SPECIALIZED].add(make)
    return {t: frozenset(makes) for t, makes in profiles.items()}


class VehicleTypeClassifier:
    """
    Infers a VehicleType for noisy pairs.

    Args:
        reference (ReferenceSet): Trusted pairs; their categories define which
                                  makes build passenger cars, motorcycles or
                                  specialized vehicles.
        catalog (Optional[ReferenceCatalog]): Catalog consulted first; None
                                              skips the catalog step.
    """

    def __init__(self, reference: ReferenceSet, catalog: Optional[ReferenceCatalog] = None):
        self.catalog = catalog
        self.profiles = make_profiles(reference)

    def _from_catalog(self, pair: IdentifierPair, session: CatalogSession) -> Optional[TypeInference]:
        for record in session.lookup(pair.primary, pair.secondary):
            if not record.category:
                continue
            vehicle_type = category_group([record.category])
            if vehicle_type is not VehicleType.UNKNOWN:
                return TypeInference(vehicle_type, 0.95, f"Catalog vehicle type {record.category}")
        return None

    def infer(self, pair: IdentifierPair, session: Optional[CatalogSession] = None) -> TypeInference:
        """
        Infer the vehicle type of one pair.

        Args:
            pair (IdentifierPair): Noisy pair.
            session (Optional[CatalogSession]): Open catalog session, if any.

        Returns:
            TypeInference: Type, confidence and the evidence used.
        """
        if session is not None:
            found = self._from_catalog(pair, session)
            if found is not None:
                return found

        make = pair.primary.upper()
        model = pair.secondary
        passenger = make in self.profiles[VehicleType.PASSENGER]
        motorcycle = make in self.profiles[VehicleType.MOTORCYCLE]
        specialized = make in self.profiles[VehicleType.SPECIALIZED]

        if passenger:
            if motorcycle and looks_like_motorcycle_model(model):
                return TypeInference(VehicleType.MOTORCYCLE, 0.80, "Mixed make, motorcycle-style model code")
            if is_passenger_model_pattern(model):
                return TypeInference(VehicleType.PASSENGER, 0.85, "Passenger make, passenger-style model code")
            return TypeInference(VehicleType.PASSENGER, 0.70, "Passenger make")
        if motorcycle:
            return TypeInference(VehicleType.MOTORCYCLE, 0.85, "Motorcycle-only make")
        if specialized:
            return TypeInference(VehicleType.SPECIALIZED, 0.85, "Specialized-only make")
        if looks_like_motorcycle_model(model):
            return TypeInference(VehicleType.MOTORCYCLE, 0.70, "Motorcycle-style model code")
        if is_passenger_model_pattern(model):
            return TypeInference(VehicleType.PASSENGER, 0.60, "Passenger-style model code")
        return TypeInference(VehicleType.UNKNOWN, 0.30, "No type evidence")

    def infer_all(self, pairs: Iterable[IdentifierPair]) -> Dict[Tuple[str, str], TypeInference]:
        """
        Infer types for many pairs over one catalog session.

        A catalog that cannot be opened is skipped; inference then relies on
        make profiles and model-code patterns only.
        """
        pairs = list(pairs)
        if self.catalog is not None:
            try:
                with self.catalog.session() as session:
                    return {p.key: self.infer(p, session) for p in pairs}
            except Exception as e:
                logger.debug(f"⚠️ Catalog unavailable for type inference: {e}")
        return {p.key: self.infer(p) for p in pairs}
