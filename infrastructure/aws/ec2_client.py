"""AWS EC2 client for build instance and image operations."""

from typing import List, Dict, Any, Optional

from botocore.exceptions import ClientError
from .session_manager import AWSSessionManager
from core.utils.logger import get_infrastructure_logger


def to_aws_tags(tags: Dict[str, str]) -> List[Dict[str, str]]:
    """Convert a plain mapping into the EC2 Key/Value tag list."""
    return [{"Key": str(key), "Value": str(value)} for key, value in tags.items()]


class EC2Client:
    """AWS EC2 client wrapper for a single region."""

    def __init__(
        self,
        region: str,
        profile: Optional[str] = None,
        role_arn: Optional[str] = None,
    ):
        self.region = region
        self.profile = profile
        self.role_arn = role_arn
        self.logger = get_infrastructure_logger(__name__)
        self._client = None
        self._session_manager = AWSSessionManager(region=region, profile=profile, role_arn=role_arn)

    def _ensure_client(self) -> None:
        """Ensure the EC2 client is initialized (lazy initialization)."""
        if self._client is None:
            session = self._session_manager.get_session(self.region)
            self._client = session.client("ec2", region_name=self.region)

    def for_region(self, region: str) -> "EC2Client":
        """Return a client for another region sharing this client's credentials."""
        return EC2Client(region=region, profile=self.profile, role_arn=self.role_arn)

    def _handle_error(self, operation: str, error: Exception) -> None:
        """Handle AWS client errors with consistent logging."""
        if isinstance(error, ClientError):
            error_code = error.response["Error"]["Code"]
            self.logger.error(f"{operation} failed in {self.region}: {error_code}")
        else:
            self.logger.error(f"{operation} failed in {self.region}: {str(error)}")
        raise

    # Key pairs

    async def create_key_pair(self, key_name: str) -> Dict[str, Any]:
        """Create a key pair and return its private key material."""
        try:
            self._ensure_client()
            response = self._client.create_key_pair(KeyName=key_name)
            return {
                "key_name": response["KeyName"],
                "key_pair_id": response.get("KeyPairId"),
                "key_material": response["KeyMaterial"],
            }
        except Exception as e:
            self._handle_error("Create key pair", e)

    async def delete_key_pair(self, key_name: str) -> None:
        try:
            self._ensure_client()
            self._client.delete_key_pair(KeyName=key_name)
        except Exception as e:
            self._handle_error("Delete key pair", e)

    # Security groups

    async def create_security_group(
        self, group_name: str, description: str, vpc_id: Optional[str] = None
    ) -> str:
        """Create a security group and return its id."""
        try:
            self._ensure_client()
            params = {"GroupName": group_name, "Description": description}
            if vpc_id:
                params["VpcId"] = vpc_id

            response = self._client.create_security_group(**params)
            return response["GroupId"]
        except Exception as e:
            self._handle_error("Create security group", e)

    async def authorize_ingress(
        self, group_id: str, port: int, cidr: str = "0.0.0.0/0", protocol: str = "tcp"
    ) -> None:
        """Open ``port`` on the group to ``cidr``."""
        try:
            self._ensure_client()
            self._client.authorize_security_group_ingress(
                GroupId=group_id,
                IpPermissions=[
                    {
                        "IpProtocol": protocol,
                        "FromPort": port,
                        "ToPort": port,
                        "IpRanges": [{"CidrIp": cidr}],
                    }
                ],
            )
        except Exception as e:
            self._handle_error("Authorize security group ingress", e)

    async def delete_security_group(self, group_id: str) -> None:
        try:
            self._ensure_client()
            self._client.delete_security_group(GroupId=group_id)
        except Exception as e:
            self._handle_error("Delete security group", e)

    # Instances

    async def run_instance(
        self,
        image_id: str,
        instance_type: str,
        key_name: str,
        security_group_ids: List[str],
        tags: Optional[Dict[str, str]] = None,
    ) -> str:
        """Launch exactly one instance and return its id."""
        try:
            self._ensure_client()
            params = {
                "ImageId": image_id,
                "InstanceType": instance_type,
                "KeyName": key_name,
                "SecurityGroupIds": security_group_ids,
                "MinCount": 1,
                "MaxCount": 1,
            }
            if tags:
                params["TagSpecifications"] = [
                    {"ResourceType": "instance", "Tags": to_aws_tags(tags)}
                ]

            response = self._client.run_instances(**params)
            return response["Instances"][0]["InstanceId"]
        except Exception as e:
            self._handle_error("Run instances", e)

    async def describe_instances(
        self,
        instance_ids: Optional[List[str]] = None,
        filters: Optional[List[Dict[str, Any]]] = None,
    ) -> List[Dict[str, Any]]:
        """Describe EC2 instances with optional filtering."""
        try:
            self._ensure_client()
            params = {}
            if instance_ids:
                params["InstanceIds"] = instance_ids
            if filters:
                params["Filters"] = filters

            instances = []
            paginator = self._client.get_paginator("describe_instances")
            for page in paginator.paginate(**params):
                for reservation in page["Reservations"]:
                    instances.extend(reservation["Instances"])

            return instances
        except Exception as e:
            self._handle_error("Describe instances", e)

    async def describe_instance_status(
        self,
        instance_ids: Optional[List[str]] = None,
        include_all_instances: bool = True,
    ) -> List[Dict[str, Any]]:
        """Get instance status information."""
        try:
            self._ensure_client()
            params = {"IncludeAllInstances": include_all_instances}
            if instance_ids:
                params["InstanceIds"] = instance_ids

            response = self._client.describe_instance_status(**params)
            return response["InstanceStatuses"]
        except Exception as e:
            self._handle_error("Describe instance status", e)

    async def get_instance_state(self, instance_id: str) -> Optional[str]:
        """Return the EC2 state name of one instance, or None if not reported."""
        statuses = await self.describe_instance_status([instance_id])
        if statuses:
            return statuses[0].get("InstanceState", {}).get("Name")

        # terminated instances drop out of the status call before describe_instances
        instances = await self.describe_instances(instance_ids=[instance_id])
        if not instances:
            return None
        return instances[0].get("State", {}).get("Name")

    async def get_public_ip(self, instance_id: str) -> Optional[str]:
        instances = await self.describe_instances(instance_ids=[instance_id])
        if not instances:
            return None
        return instances[0].get("PublicIpAddress")

    async def reboot_instances(self, instance_ids: List[str]) -> None:
        try:
            self._ensure_client()
            self._client.reboot_instances(InstanceIds=instance_ids)
        except Exception as e:
            self._handle_error("Reboot instances", e)

    async def stop_instances(self, instance_ids: List[str], force: bool = False) -> List[Dict[str, Any]]:
        try:
            self._ensure_client()
            response = self._client.stop_instances(InstanceIds=instance_ids, Force=force)
            return response["StoppingInstances"]
        except Exception as e:
            self._handle_error("Stop instances", e)

    async def terminate_instances(self, instance_ids: List[str]) -> List[Dict[str, Any]]:
        try:
            self._ensure_client()
            response = self._client.terminate_instances(InstanceIds=instance_ids)
            return response["TerminatingInstances"]
        except Exception as e:
            self._handle_error("Terminate instances", e)

    # Images

    async def create_image(
        self,
        instance_id: str,
        name: str,
        description: Optional[str] = None,
        no_reboot: bool = True,
    ) -> str:
        """Create an AMI from an instance and return the image id."""
        try:
            self._ensure_client()
            params = {"InstanceId": instance_id, "Name": name, "NoReboot": no_reboot}
            if description:
                params["Description"] = description

            response = self._client.create_image(**params)
            return response["ImageId"]
        except Exception as e:
            self._handle_error("Create AMI", e)

    async def describe_images(
        self,
        image_ids: Optional[List[str]] = None,
        owners: Optional[List[str]] = None,
        filters: Optional[List[Dict[str, Any]]] = None,
    ) -> List[Dict[str, Any]]:
        """Describe AMI images."""
        try:
            self._ensure_client()
            params = {}
            if image_ids:
                params["ImageIds"] = image_ids
            if owners:
                params["Owners"] = owners
            if filters:
                params["Filters"] = filters

            response = self._client.describe_images(**params)
            return response["Images"]
        except Exception as e:
            self._handle_error("Describe images", e)

    async def get_image_state(self, image_id: str) -> Optional[str]:
        images = await self.describe_images(image_ids=[image_id])
        if not images:
            return None
        return images[0].get("State")

    async def find_latest_image(
        self, owners: List[str], name_pattern: str, architecture: str = "x86_64"
    ) -> Optional[str]:
        """Return the id of the newest available image matching ``name_pattern``."""
        images = await self.describe_images(
            owners=owners,
            filters=[
                {"Name": "name", "Values": [name_pattern]},
                {"Name": "architecture", "Values": [architecture]},
                {"Name": "state", "Values": ["available"]},
            ],
        )
        if not images:
            return None

        images.sort(key=lambda image: image.get("CreationDate", ""), reverse=True)
        return images[0]["ImageId"]

    async def copy_image(
        self,
        source_image_id: str,
        source_region: str,
        name: str,
        description: Optional[str] = None,
    ) -> str:
        """Copy an image from ``source_region`` into this client's region."""
        try:
            self._ensure_client()
            params = {
                "SourceImageId": source_image_id,
                "SourceRegion": source_region,
                "Name": name,
            }
            if description:
                params["Description"] = description

            response = self._client.copy_image(**params)
            return response["ImageId"]
        except Exception as e:
            self._handle_error("Copy AMI", e)

    async def create_tags(self, resource_ids: List[str], tags: Dict[str, str]) -> None:
        if not tags:
            return
        try:
            self._ensure_client()
            self._client.create_tags(Resources=resource_ids, Tags=to_aws_tags(tags))
        except Exception as e:
            self._handle_error("Create tags", e)
