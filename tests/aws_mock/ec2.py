"""Mock EC2 client covering the VPC networking surface."""

from __future__ import annotations

import copy
from typing import Any

from .state import MockClient, api, matches_filters, tag_list, tags_from_spec

NAT_TRANSITION = "nat-gateway"
ENDPOINT_TRANSITION = "vpc-endpoint"


def _vpc_id(item: dict[str, Any]) -> list[str]:
    return [item.get("VpcId", "")]


def _group_references(group: dict[str, Any]) -> list[str]:
    return [
        pair.get("GroupId", "")
        for perm in group.get("IpPermissions", [])
        for pair in perm.get("UserIdGroupPairs", [])
    ]


def _strip_descriptions(permission: dict[str, Any]) -> dict[str, Any]:
    """Permission identity without descriptions, for duplicate detection."""
    stripped = {k: v for k, v in permission.items() if k not in ("UserIdGroupPairs", "IpRanges")}
    stripped["UserIdGroupPairs"] = sorted(
        p.get("GroupId", "") for p in permission.get("UserIdGroupPairs", [])
    )
    stripped["IpRanges"] = sorted(r.get("CidrIp", "") for r in permission.get("IpRanges", []))
    return stripped


class MockEc2Client(MockClient):
    """In-memory EC2 with the subset of operations the engine uses."""

    # =========================================================================
    # Availability zones
    # =========================================================================

    @api("ec2")
    def describe_availability_zones(self, Filters: list[dict[str, Any]] | None = None) -> dict:
        zones = [
            {"ZoneName": zone, "State": "available", "RegionName": self.state.region}
            for zone in self.state.availability_zones
        ]
        fields = {
            "region-name": lambda z: [z["RegionName"]],
            "state": lambda z: [z["State"]],
        }
        return {"AvailabilityZones": [z for z in zones if matches_filters(z, Filters, fields)]}

    # =========================================================================
    # VPCs
    # =========================================================================

    @api("ec2")
    def describe_vpcs(self, Filters: list[dict[str, Any]] | None = None) -> dict:
        fields = {"vpc-id": lambda v: [v["VpcId"]], "cidr": lambda v: [v["CidrBlock"]]}
        return {
            "Vpcs": [
                copy.deepcopy(v)
                for v in self.state.vpcs.values()
                if matches_filters(v, Filters, fields)
            ]
        }

    @api("ec2")
    def create_vpc(
        self, CidrBlock: str, TagSpecifications: list[dict[str, Any]] | None = None
    ) -> dict:
        vpc_id = self.state.new_id("vpc")
        vpc = {
            "VpcId": vpc_id,
            "CidrBlock": CidrBlock,
            "State": "available",
            "EnableDnsSupport": True,
            "EnableDnsHostnames": False,
            "Tags": tag_list(tags_from_spec(TagSpecifications)),
        }
        self.state.vpcs[vpc_id] = vpc
        # Every VPC comes with a default security group
        group_id = self.state.new_id("sg")
        self.state.security_groups[group_id] = {
            "GroupId": group_id,
            "GroupName": "default",
            "Description": "default VPC security group",
            "VpcId": vpc_id,
            "IpPermissions": [],
            "IpPermissionsEgress": [],
            "Tags": [],
        }
        return {"Vpc": copy.deepcopy(vpc)}

    @api("ec2")
    def modify_vpc_attribute(
        self,
        VpcId: str,
        EnableDnsSupport: dict[str, bool] | None = None,
        EnableDnsHostnames: dict[str, bool] | None = None,
    ) -> dict:
        vpc = self._get(self.state.vpcs, VpcId, "InvalidVpcID.NotFound", "modify_vpc_attribute")
        if EnableDnsSupport is not None:
            vpc["EnableDnsSupport"] = EnableDnsSupport["Value"]
        if EnableDnsHostnames is not None:
            vpc["EnableDnsHostnames"] = EnableDnsHostnames["Value"]
        return {}

    @api("ec2")
    def delete_vpc(self, VpcId: str) -> dict:
        self._get(self.state.vpcs, VpcId, "InvalidVpcID.NotFound", "delete_vpc")
        blockers = [s for s in self.state.subnets.values() if s["VpcId"] == VpcId]
        blockers += [
            g
            for g in self.state.security_groups.values()
            if g["VpcId"] == VpcId and g["GroupName"] != "default"
        ]
        blockers += [
            i
            for i in self.state.internet_gateways.values()
            if any(a["VpcId"] == VpcId for a in i["Attachments"])
        ]
        blockers += [r for r in self.state.route_tables.values() if r["VpcId"] == VpcId]
        if blockers:
            raise self._error(
                "DependencyViolation", f"The vpc '{VpcId}' has dependencies", "delete_vpc"
            )
        for group_id in [
            g["GroupId"] for g in self.state.security_groups.values() if g["VpcId"] == VpcId
        ]:
            del self.state.security_groups[group_id]
        del self.state.vpcs[VpcId]
        return {}

    # =========================================================================
    # Subnets
    # =========================================================================

    @api("ec2")
    def describe_subnets(self, Filters: list[dict[str, Any]] | None = None) -> dict:
        fields = {"vpc-id": _vpc_id, "subnet-id": lambda s: [s["SubnetId"]]}
        return {
            "Subnets": [
                copy.deepcopy(s)
                for s in self.state.subnets.values()
                if matches_filters(s, Filters, fields)
            ]
        }

    @api("ec2")
    def create_subnet(
        self,
        VpcId: str,
        CidrBlock: str,
        AvailabilityZone: str,
        TagSpecifications: list[dict[str, Any]] | None = None,
    ) -> dict:
        self._get(self.state.vpcs, VpcId, "InvalidVpcID.NotFound", "create_subnet")
        if any(
            s["VpcId"] == VpcId and s["CidrBlock"] == CidrBlock
            for s in self.state.subnets.values()
        ):
            raise self._error(
                "InvalidSubnet.Conflict", f"The CIDR '{CidrBlock}' conflicts", "create_subnet"
            )
        subnet_id = self.state.new_id("subnet")
        subnet = {
            "SubnetId": subnet_id,
            "VpcId": VpcId,
            "CidrBlock": CidrBlock,
            "AvailabilityZone": AvailabilityZone,
            "MapPublicIpOnLaunch": False,
            "State": "available",
            "Tags": tag_list(tags_from_spec(TagSpecifications)),
        }
        self.state.subnets[subnet_id] = subnet
        return {"Subnet": copy.deepcopy(subnet)}

    @api("ec2")
    def modify_subnet_attribute(
        self, SubnetId: str, MapPublicIpOnLaunch: dict[str, bool] | None = None
    ) -> dict:
        subnet = self._get(
            self.state.subnets, SubnetId, "InvalidSubnetID.NotFound", "modify_subnet_attribute"
        )
        if MapPublicIpOnLaunch is not None:
            subnet["MapPublicIpOnLaunch"] = MapPublicIpOnLaunch["Value"]
        return {}

    @api("ec2")
    def delete_subnet(self, SubnetId: str) -> dict:
        self._get(self.state.subnets, SubnetId, "InvalidSubnetID.NotFound", "delete_subnet")
        in_use = any(
            n["SubnetId"] == SubnetId and n["State"] not in ("deleted",)
            for n in self.state.nat_gateways.values()
        )
        if in_use:
            raise self._error(
                "DependencyViolation",
                f"The subnet '{SubnetId}' has dependencies",
                "delete_subnet",
            )
        del self.state.subnets[SubnetId]
        return {}

    # =========================================================================
    # Internet gateways
    # =========================================================================

    @api("ec2")
    def describe_internet_gateways(self, Filters: list[dict[str, Any]] | None = None) -> dict:
        fields = {"attachment.vpc-id": lambda i: [a["VpcId"] for a in i["Attachments"]]}
        return {
            "InternetGateways": [
                copy.deepcopy(i)
                for i in self.state.internet_gateways.values()
                if matches_filters(i, Filters, fields)
            ]
        }

    @api("ec2")
    def create_internet_gateway(
        self, TagSpecifications: list[dict[str, Any]] | None = None
    ) -> dict:
        igw_id = self.state.new_id("igw")
        gateway = {
            "InternetGatewayId": igw_id,
            "Attachments": [],
            "Tags": tag_list(tags_from_spec(TagSpecifications)),
        }
        self.state.internet_gateways[igw_id] = gateway
        return {"InternetGateway": copy.deepcopy(gateway)}

    @api("ec2")
    def attach_internet_gateway(self, InternetGatewayId: str, VpcId: str) -> dict:
        gateway = self._get(
            self.state.internet_gateways,
            InternetGatewayId,
            "InvalidInternetGatewayID.NotFound",
            "attach_internet_gateway",
        )
        if gateway["Attachments"]:
            raise self._error(
                "Resource.AlreadyAssociated",
                f"{InternetGatewayId} is already attached",
                "attach_internet_gateway",
            )
        gateway["Attachments"] = [{"VpcId": VpcId, "State": "available"}]
        return {}

    @api("ec2")
    def detach_internet_gateway(self, InternetGatewayId: str, VpcId: str) -> dict:
        gateway = self._get(
            self.state.internet_gateways,
            InternetGatewayId,
            "InvalidInternetGatewayID.NotFound",
            "detach_internet_gateway",
        )
        gateway["Attachments"] = [a for a in gateway["Attachments"] if a["VpcId"] != VpcId]
        return {}

    @api("ec2")
    def delete_internet_gateway(self, InternetGatewayId: str) -> dict:
        gateway = self._get(
            self.state.internet_gateways,
            InternetGatewayId,
            "InvalidInternetGatewayID.NotFound",
            "delete_internet_gateway",
        )
        if gateway["Attachments"]:
            raise self._error(
                "DependencyViolation",
                f"{InternetGatewayId} is still attached",
                "delete_internet_gateway",
            )
        del self.state.internet_gateways[InternetGatewayId]
        return {}

    # =========================================================================
    # Elastic IPs
    # =========================================================================

    @api("ec2")
    def describe_addresses(self, Filters: list[dict[str, Any]] | None = None) -> dict:
        fields = {"domain": lambda a: [a["Domain"]]}
        return {
            "Addresses": [
                copy.deepcopy(a)
                for a in self.state.addresses.values()
                if matches_filters(a, Filters, fields)
            ]
        }

    @api("ec2")
    def allocate_address(
        self, Domain: str = "vpc", TagSpecifications: list[dict[str, Any]] | None = None
    ) -> dict:
        allocation_id = self.state.new_id("eipalloc")
        address = {
            "AllocationId": allocation_id,
            "PublicIp": f"203.0.113.{len(self.state.addresses) % 250 + 1}",
            "Domain": Domain,
            "Tags": tag_list(tags_from_spec(TagSpecifications)),
        }
        self.state.addresses[allocation_id] = address
        return {"AllocationId": allocation_id, "PublicIp": address["PublicIp"], "Domain": Domain}

    @api("ec2")
    def release_address(self, AllocationId: str) -> dict:
        address = self._get(
            self.state.addresses, AllocationId, "InvalidAllocationID.NotFound", "release_address"
        )
        if address.get("AssociationId"):
            raise self._error(
                "InvalidIPAddress.InUse", f"{AllocationId} is in use", "release_address"
            )
        del self.state.addresses[AllocationId]
        return {}

    # =========================================================================
    # NAT gateways
    # =========================================================================

    @api("ec2")
    def describe_nat_gateways(
        self,
        Filter: list[dict[str, Any]] | None = None,
        NatGatewayIds: list[str] | None = None,
    ) -> dict:
        self.state.tick(NAT_TRANSITION)
        fields = {
            "vpc-id": _vpc_id,
            "state": lambda n: [n["State"]],
            "subnet-id": lambda n: [n["SubnetId"]],
        }
        gateways = [
            copy.deepcopy(n)
            for n in self.state.nat_gateways.values()
            if matches_filters(n, Filter, fields)
            and (NatGatewayIds is None or n["NatGatewayId"] in NatGatewayIds)
        ]
        return {"NatGateways": gateways}

    @api("ec2")
    def create_nat_gateway(
        self,
        SubnetId: str,
        AllocationId: str,
        TagSpecifications: list[dict[str, Any]] | None = None,
    ) -> dict:
        subnet = self._get(
            self.state.subnets, SubnetId, "InvalidSubnetID.NotFound", "create_nat_gateway"
        )
        address = self._get(
            self.state.addresses,
            AllocationId,
            "InvalidAllocationID.NotFound",
            "create_nat_gateway",
        )
        if address.get("AssociationId"):
            raise self._error(
                "Resource.AlreadyAssociated", f"{AllocationId} is in use", "create_nat_gateway"
            )
        nat_id = self.state.new_id("nat")
        address["AssociationId"] = self.state.new_id("eipassoc")
        gateway = {
            "NatGatewayId": nat_id,
            "SubnetId": SubnetId,
            "VpcId": subnet["VpcId"],
            "State": "pending",
            "NatGatewayAddresses": [
                {"AllocationId": AllocationId, "PublicIp": address["PublicIp"]}
            ],
            "Tags": tag_list(tags_from_spec(TagSpecifications)),
        }
        self.state.nat_gateways[nat_id] = gateway

        def available() -> None:
            gateway["State"] = "available"

        self.state.schedule(NAT_TRANSITION, nat_id, available)
        return {"NatGateway": copy.deepcopy(gateway)}

    @api("ec2")
    def delete_nat_gateway(self, NatGatewayId: str) -> dict:
        gateway = self._get(
            self.state.nat_gateways, NatGatewayId, "NatGatewayNotFound", "delete_nat_gateway"
        )
        gateway["State"] = "deleting"

        def deleted() -> None:
            gateway["State"] = "deleted"
            for address in gateway["NatGatewayAddresses"]:
                allocated = self.state.addresses.get(address["AllocationId"])
                if allocated is not None:
                    allocated.pop("AssociationId", None)

        self.state.schedule(NAT_TRANSITION, NatGatewayId, deleted)
        return {"NatGatewayId": NatGatewayId}

    # =========================================================================
    # Route tables
    # =========================================================================

    @api("ec2")
    def describe_route_tables(self, Filters: list[dict[str, Any]] | None = None) -> dict:
        fields = {
            "vpc-id": _vpc_id,
            "association.subnet-id": lambda r: [a["SubnetId"] for a in r["Associations"]],
        }
        return {
            "RouteTables": [
                copy.deepcopy(r)
                for r in self.state.route_tables.values()
                if matches_filters(r, Filters, fields)
            ]
        }

    @api("ec2")
    def create_route_table(
        self, VpcId: str, TagSpecifications: list[dict[str, Any]] | None = None
    ) -> dict:
        vpc = self._get(self.state.vpcs, VpcId, "InvalidVpcID.NotFound", "create_route_table")
        table_id = self.state.new_id("rtb")
        table = {
            "RouteTableId": table_id,
            "VpcId": VpcId,
            "Routes": [{"DestinationCidrBlock": vpc["CidrBlock"], "GatewayId": "local"}],
            "Associations": [],
            "Tags": tag_list(tags_from_spec(TagSpecifications)),
        }
        self.state.route_tables[table_id] = table
        return {"RouteTable": copy.deepcopy(table)}

    @api("ec2")
    def create_route(
        self,
        RouteTableId: str,
        DestinationCidrBlock: str,
        GatewayId: str | None = None,
        NatGatewayId: str | None = None,
    ) -> dict:
        table = self._get(
            self.state.route_tables, RouteTableId, "InvalidRouteTableID.NotFound", "create_route"
        )
        if any(r["DestinationCidrBlock"] == DestinationCidrBlock for r in table["Routes"]):
            raise self._error(
                "RouteAlreadyExists", f"Route {DestinationCidrBlock} exists", "create_route"
            )
        route: dict[str, Any] = {"DestinationCidrBlock": DestinationCidrBlock, "State": "active"}
        if GatewayId:
            route["GatewayId"] = GatewayId
        if NatGatewayId:
            route["NatGatewayId"] = NatGatewayId
        table["Routes"].append(route)
        return {"Return": True}

    @api("ec2")
    def associate_route_table(self, RouteTableId: str, SubnetId: str) -> dict:
        table = self._get(
            self.state.route_tables,
            RouteTableId,
            "InvalidRouteTableID.NotFound",
            "associate_route_table",
        )
        self._get(self.state.subnets, SubnetId, "InvalidSubnetID.NotFound", "associate_route_table")
        for other in self.state.route_tables.values():
            if any(a["SubnetId"] == SubnetId for a in other["Associations"]):
                raise self._error(
                    "Resource.AlreadyAssociated",
                    f"{SubnetId} is already associated",
                    "associate_route_table",
                )
        association_id = self.state.new_id("rtbassoc")
        table["Associations"].append(
            {
                "RouteTableAssociationId": association_id,
                "RouteTableId": RouteTableId,
                "SubnetId": SubnetId,
                "Main": False,
            }
        )
        return {"AssociationId": association_id}

    @api("ec2")
    def disassociate_route_table(self, AssociationId: str) -> dict:
        for table in self.state.route_tables.values():
            before = len(table["Associations"])
            table["Associations"] = [
                a for a in table["Associations"] if a["RouteTableAssociationId"] != AssociationId
            ]
            if len(table["Associations"]) != before:
                return {}
        raise self._error(
            "InvalidAssociationID.NotFound",
            f"{AssociationId} does not exist",
            "disassociate_route_table",
        )

    @api("ec2")
    def delete_route_table(self, RouteTableId: str) -> dict:
        table = self._get(
            self.state.route_tables,
            RouteTableId,
            "InvalidRouteTableID.NotFound",
            "delete_route_table",
        )
        if table["Associations"]:
            raise self._error(
                "DependencyViolation",
                f"{RouteTableId} has associations",
                "delete_route_table",
            )
        del self.state.route_tables[RouteTableId]
        return {}

    # =========================================================================
    # Security groups
    # =========================================================================

    @api("ec2")
    def describe_security_groups(
        self,
        Filters: list[dict[str, Any]] | None = None,
        GroupIds: list[str] | None = None,
    ) -> dict:
        fields = {
            "vpc-id": _vpc_id,
            "group-name": lambda g: [g["GroupName"]],
            "group-id": lambda g: [g["GroupId"]],
            "ip-permission.group-id": _group_references,
        }
        return {
            "SecurityGroups": [
                copy.deepcopy(g)
                for g in self.state.security_groups.values()
                if matches_filters(g, Filters, fields)
                and (GroupIds is None or g["GroupId"] in GroupIds)
            ]
        }

    @api("ec2")
    def create_security_group(
        self,
        GroupName: str,
        Description: str,
        VpcId: str,
        TagSpecifications: list[dict[str, Any]] | None = None,
    ) -> dict:
        self._get(self.state.vpcs, VpcId, "InvalidVpcID.NotFound", "create_security_group")
        group_id = self.state.add_security_group(
            GroupName, VpcId, tags_from_spec(TagSpecifications), Description
        )
        return {"GroupId": group_id}

    @api("ec2")
    def authorize_security_group_ingress(
        self, GroupId: str, IpPermissions: list[dict[str, Any]]
    ) -> dict:
        self._authorize(
            "IpPermissions", GroupId, IpPermissions, "authorize_security_group_ingress"
        )
        return {"Return": True}

    @api("ec2")
    def authorize_security_group_egress(
        self, GroupId: str, IpPermissions: list[dict[str, Any]]
    ) -> dict:
        self._authorize(
            "IpPermissionsEgress", GroupId, IpPermissions, "authorize_security_group_egress"
        )
        return {"Return": True}

    def _authorize(
        self, key: str, group_id: str, permissions: list[dict[str, Any]], operation: str
    ) -> None:
        group = self._get(self.state.security_groups, group_id, "InvalidGroup.NotFound", operation)
        existing = [_strip_descriptions(p) for p in group[key]]
        for permission in permissions:
            if _strip_descriptions(permission) in existing:
                raise self._error(
                    "InvalidPermission.Duplicate", "the specified rule already exists", operation
                )
        group[key].extend(copy.deepcopy(permissions))

    @api("ec2")
    def revoke_security_group_ingress(
        self, GroupId: str, IpPermissions: list[dict[str, Any]]
    ) -> dict:
        group = self._get(
            self.state.security_groups,
            GroupId,
            "InvalidGroup.NotFound",
            "revoke_security_group_ingress",
        )
        for revoked in IpPermissions:
            revoked_groups = {p["GroupId"] for p in revoked.get("UserIdGroupPairs", [])}
            for perm in group["IpPermissions"]:
                if perm.get("IpProtocol") != revoked.get("IpProtocol"):
                    continue
                if perm.get("FromPort") != revoked.get("FromPort"):
                    continue
                perm["UserIdGroupPairs"] = [
                    p
                    for p in perm.get("UserIdGroupPairs", [])
                    if p.get("GroupId") not in revoked_groups
                ]
            group["IpPermissions"] = [
                p
                for p in group["IpPermissions"]
                if p.get("UserIdGroupPairs") or p.get("IpRanges")
            ]
        return {"Return": True}

    @api("ec2")
    def delete_security_group(self, GroupId: str) -> dict:
        group = self._get(
            self.state.security_groups, GroupId, "InvalidGroup.NotFound", "delete_security_group"
        )
        referenced = any(
            GroupId in _group_references(other)
            for other in self.state.security_groups.values()
            if other["GroupId"] != GroupId
        )
        attached = any(
            GroupId in lb.get("SecurityGroups", []) for lb in self.state.load_balancers.values()
        )
        if referenced or attached:
            raise self._error(
                "DependencyViolation",
                f"resource {GroupId} has a dependent object",
                "delete_security_group",
            )
        if group["GroupName"] == "default":
            raise self._error(
                "CannotDelete",
                "the default security group cannot be deleted",
                "delete_security_group",
            )
        del self.state.security_groups[GroupId]
        return {}

    # =========================================================================
    # VPC endpoints
    # =========================================================================

    @api("ec2")
    def describe_vpc_endpoints(
        self,
        Filters: list[dict[str, Any]] | None = None,
        VpcEndpointIds: list[str] | None = None,
    ) -> dict:
        self.state.tick(ENDPOINT_TRANSITION)
        if VpcEndpointIds is not None:
            missing = [e for e in VpcEndpointIds if e not in self.state.vpc_endpoints]
            if missing:
                raise self._error(
                    "InvalidVpcEndpointId.NotFound",
                    f"The VpcEndpoint IDs '{', '.join(missing)}' do not exist",
                    "describe_vpc_endpoints",
                )
        fields = {
            "vpc-id": _vpc_id,
            "service-name": lambda e: [e["ServiceName"]],
            "vpc-endpoint-state": lambda e: [e["State"]],
        }
        return {
            "VpcEndpoints": [
                copy.deepcopy(e)
                for e in self.state.vpc_endpoints.values()
                if matches_filters(e, Filters, fields)
                and (VpcEndpointIds is None or e["VpcEndpointId"] in VpcEndpointIds)
            ]
        }

    @api("ec2")
    def create_vpc_endpoint(
        self,
        VpcId: str,
        ServiceName: str,
        VpcEndpointType: str = "Gateway",
        SubnetIds: list[str] | None = None,
        SecurityGroupIds: list[str] | None = None,
        RouteTableIds: list[str] | None = None,
        PrivateDnsEnabled: bool | None = None,
        TagSpecifications: list[dict[str, Any]] | None = None,
    ) -> dict:
        self._get(self.state.vpcs, VpcId, "InvalidVpcID.NotFound", "create_vpc_endpoint")
        endpoint_id = self.state.new_id("vpce")
        interface = VpcEndpointType == "Interface"
        endpoint = {
            "VpcEndpointId": endpoint_id,
            "VpcEndpointType": VpcEndpointType,
            "VpcId": VpcId,
            "ServiceName": ServiceName,
            "State": "pending" if interface else "available",
            "SubnetIds": list(SubnetIds or []),
            "RouteTableIds": list(RouteTableIds or []),
            "Groups": [
                {"GroupId": g, "GroupName": self._group_name(g)} for g in SecurityGroupIds or []
            ],
            "PrivateDnsEnabled": bool(PrivateDnsEnabled),
            "Tags": tag_list(tags_from_spec(TagSpecifications)),
        }
        self.state.vpc_endpoints[endpoint_id] = endpoint

        if interface:

            def available() -> None:
                endpoint["State"] = "available"

            self.state.schedule(ENDPOINT_TRANSITION, endpoint_id, available)
        return {"VpcEndpoint": copy.deepcopy(endpoint)}

    @api("ec2")
    def modify_vpc_endpoint(
        self,
        VpcEndpointId: str,
        AddSecurityGroupIds: list[str] | None = None,
        RemoveSecurityGroupIds: list[str] | None = None,
    ) -> dict:
        endpoint = self._get(
            self.state.vpc_endpoints,
            VpcEndpointId,
            "InvalidVpcEndpointId.NotFound",
            "modify_vpc_endpoint",
        )
        groups = {g["GroupId"]: g for g in endpoint["Groups"]}
        for group_id in AddSecurityGroupIds or []:
            groups.setdefault(group_id, {"GroupId": group_id, "GroupName": ""})
        for group_id in RemoveSecurityGroupIds or []:
            groups.pop(group_id, None)
        endpoint["Groups"] = list(groups.values())
        return {"Return": True}

    @api("ec2")
    def delete_vpc_endpoints(self, VpcEndpointIds: list[str]) -> dict:
        unsuccessful = []
        for endpoint_id in VpcEndpointIds:
            endpoint = self.state.vpc_endpoints.get(endpoint_id)
            if endpoint is None:
                unsuccessful.append(
                    {
                        "ResourceId": endpoint_id,
                        "Error": {"Code": "InvalidVpcEndpoint.NotFound", "Message": "not found"},
                    }
                )
                continue
            endpoint["State"] = "deleting"

            def gone(endpoint_id: str = endpoint_id) -> None:
                self.state.vpc_endpoints.pop(endpoint_id, None)

            self.state.schedule(ENDPOINT_TRANSITION, endpoint_id, gone)
        return {"Unsuccessful": unsuccessful}

    # =========================================================================
    # Helpers
    # =========================================================================

    def _group_name(self, group_id: str) -> str:
        return self.state.security_groups.get(group_id, {}).get("GroupName", "")

    def _get(
        self, store: dict[str, dict[str, Any]], key: str, code: str, operation: str
    ) -> dict[str, Any]:
        item = store.get(key)
        if item is None:
            raise self._error(code, f"The ID '{key}' does not exist", operation)
        return item
