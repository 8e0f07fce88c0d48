"""txattrs Quickstart — pip install txattrs"""

from datetime import timedelta

from txattrs import AttributeDestinations, configure_security_policies, filter_attributes
from txattrs.builders import (
    build_cat_trip_id_attributes,
    build_custom_attribute,
    build_duration_attribute,
)

# Policies as received from the collector
configure_security_policies({
    "custom_parameters": {"enabled": True, "required": False},
    "allow_raw_exception_messages": {"enabled": False, "required": True},
})

attributes = [
    build_duration_attribute(timedelta(milliseconds=1500)),
    build_custom_attribute("plan", "gold"),
    *build_cat_trip_id_attributes("abc"),
]

for attribute in filter_attributes(attributes, AttributeDestinations.TRANSACTION_EVENT):
    print(f"{attribute.key} = {attribute.value!r} ({attribute.classification.value})")
