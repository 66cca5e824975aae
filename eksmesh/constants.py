# The name of the project
PROJECT_NAME = "eksmesh"

# The environment variable for the directory where the eksmesh data is saved
HOME_ENV_VAR = "EKSMESH_HOME"

# Pulumi stack name
PULUMI_STACK_NAME = "default"

# The port the EKS control plane serves the Kubernetes API on
CONTROL_PLANE_PORT = 443

# Tag put on every node security group so that the mesh can be found again
MESH_TAG_KEY = "eksmesh/mesh"

# Tag holding the index of a node security group inside its mesh
MESH_INDEX_TAG_KEY = "eksmesh/index"
