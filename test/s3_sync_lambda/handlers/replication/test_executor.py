from datetime import datetime, timedelta, timezone
from pathlib import Path
from test.s3_sync_lambda.handlers.replication.base import (
    SOURCE_BUCKET,
    TARGET_BUCKET,
    ReplicationTestCase,
)
from unittest import mock

from botocore.exceptions import ClientError, WaiterError

from s3_sync_lambda.handlers.replication.clients import ScopedClient
from s3_sync_lambda.handlers.replication.config import TargetKeyStrategy
from s3_sync_lambda.handlers.replication.errors import (
    CleanupError,
    ConfirmError,
    CredentialError,
    DeleteError,
    DownloadError,
    UploadError,
)
from s3_sync_lambda.handlers.replication.executor import ReplicationExecutor


class ReplicationExecutorCopyTests(ReplicationTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.executor = ReplicationExecutor(config=self.get_config())

    def test__copy__replicates_object_under_prefixed_key(self):
        content = b"hello world" * 100
        self.put_source_object("a.txt", content)

        result = self.executor.copy(SOURCE_BUCKET, "a.txt")

        self.assertEqual(result.replica_key, "copy_a.txt")
        self.assertEqual(result.size_bytes, len(content))
        self.assertEqual(self.get_target_object("copy_a.txt"), content)
        self.assertStagingDirEmpty()

    def test__copy__original_key_strategy_mirrors_key(self):
        self.executor = ReplicationExecutor(
            config=self.get_config(target_key_strategy=TargetKeyStrategy.ORIGINAL_KEY)
        )
        self.put_source_object("nested/dir/a.txt", b"abc")

        result = self.executor.copy(SOURCE_BUCKET, "nested/dir/a.txt")

        self.assertEqual(result.replica_key, "nested/dir/a.txt")
        self.assertListEqual(self.list_target_keys(), ["nested/dir/a.txt"])
        self.assertStagingDirEmpty()

    def test__copy__empty_object(self):
        self.put_source_object("empty.txt", b"")

        result = self.executor.copy(SOURCE_BUCKET, "empty.txt")

        self.assertEqual(result.size_bytes, 0)
        self.assertEqual(self.get_target_object("copy_empty.txt"), b"")

    def test__copy__missing_object_raises_download_error(self):
        with self.assertRaises(DownloadError) as ctx:
            self.executor.copy(SOURCE_BUCKET, "missing.txt")

        self.assertEqual(ctx.exception.bucket, SOURCE_BUCKET)
        self.assertEqual(ctx.exception.key, "missing.txt")
        self.assertEqual(ctx.exception.leg, "download")
        self.assertListEqual(self.list_target_keys(), [])
        self.assertStagingDirEmpty()

    def test__copy__missing_target_bucket_raises_upload_error(self):
        self.executor = ReplicationExecutor(
            config=self.get_config(target_bucket="no-such-bucket")
        )
        self.put_source_object("a.txt", b"abc")

        with self.assertRaises(UploadError) as ctx:
            self.executor.copy(SOURCE_BUCKET, "a.txt")

        self.assertEqual(ctx.exception.leg, "upload")
        self.assertIn("no-such-bucket", str(ctx.exception))
        self.assertStagingDirEmpty()

    def test__copy__cleanup_failure_after_successful_legs_raises_cleanup_error(self):
        mock_shutil = self.create_patch("s3_sync_lambda.handlers.replication.executor.shutil")
        mock_shutil.rmtree.side_effect = PermissionError("read-only file system")
        self.put_source_object("a.txt", b"abc")

        with self.assertRaises(CleanupError) as ctx:
            self.executor.copy(SOURCE_BUCKET, "a.txt")

        self.assertIn("read-only file system", str(ctx.exception))
        self.assertEqual(self.get_target_object("copy_a.txt"), b"abc")

    def test__copy__upload_error_takes_precedence_over_cleanup_failure(self):
        mock_shutil = self.create_patch("s3_sync_lambda.handlers.replication.executor.shutil")
        mock_shutil.rmtree.side_effect = PermissionError("read-only file system")
        self.executor = ReplicationExecutor(
            config=self.get_config(target_bucket="no-such-bucket")
        )
        self.put_source_object("a.txt", b"abc")

        with self.assertRaises(UploadError):
            self.executor.copy(SOURCE_BUCKET, "a.txt")

    def test__copy__target_credential_failure_still_cleans_up(self):
        real_factory_calls = []

        def client_factory(role_arn: str, region: str) -> ScopedClient:
            real_factory_calls.append(role_arn)
            if role_arn == self.role_arn("target-role"):
                raise CredentialError(role_arn, region, "AccessDenied")
            return ScopedClient(role_arn, region, self.source_s3)

        self.executor = ReplicationExecutor(
            config=self.get_config(), client_factory=client_factory
        )
        self.put_source_object("a.txt", b"abc")

        with self.assertRaises(CredentialError):
            self.executor.copy(SOURCE_BUCKET, "a.txt")

        self.assertListEqual(
            real_factory_calls, [self.role_arn("source-role"), self.role_arn("target-role")]
        )
        self.assertStagingDirEmpty()

    def test__copy__source_credential_failure_creates_no_artifact(self):
        def client_factory(role_arn: str, region: str) -> ScopedClient:
            raise CredentialError(role_arn, region, "AccessDenied")

        self.executor = ReplicationExecutor(
            config=self.get_config(), client_factory=client_factory
        )
        with self.assertRaises(CredentialError):
            self.executor.copy(SOURCE_BUCKET, "a.txt")
        self.assertStagingDirEmpty()

    def test__copy__expired_target_credentials_fail_before_upload(self):
        target = mock.MagicMock()
        expired_at = datetime.now(timezone.utc) - timedelta(minutes=1)

        def client_factory(role_arn: str, region: str) -> ScopedClient:
            if role_arn == self.role_arn("source-role"):
                return ScopedClient(role_arn, region, self.source_s3)
            return ScopedClient(role_arn, region, target, expired_at)

        self.executor = ReplicationExecutor(
            config=self.get_config(), client_factory=client_factory
        )
        self.put_source_object("a.txt", b"abc")

        with self.assertRaises(CredentialError) as ctx:
            self.executor.copy(SOURCE_BUCKET, "a.txt")

        self.assertIn("expired", str(ctx.exception))
        target.upload_file.assert_not_called()
        self.assertStagingDirEmpty()


class ReplicationExecutorStreamingTests(ReplicationTestCase):
    """Copy against stubbed clients, checking what is handed to each leg."""

    def setUp(self) -> None:
        super().setUp()
        self.source = mock.MagicMock()
        self.target = mock.MagicMock()
        self.uploaded = []

        def download_file(bucket, key, filename):
            Path(filename).write_bytes(b"x" * 4096)

        def upload_file(filename, bucket, key):
            self.uploaded.append((Path(filename).read_bytes(), bucket, key))

        self.source.download_file.side_effect = download_file
        self.target.upload_file.side_effect = upload_file

        def client_factory(role_arn: str, region: str) -> ScopedClient:
            if role_arn == self.role_arn("source-role"):
                self.assertEqual(region, self.SOURCE_REGION)
                return ScopedClient(role_arn, region, self.source)
            self.assertEqual(region, self.TARGET_REGION)
            return ScopedClient(role_arn, region, self.target)

        self.executor = ReplicationExecutor(
            config=self.get_config(), client_factory=client_factory
        )

    def test__copy__uploads_exactly_the_downloaded_bytes_once(self):
        result = self.executor.copy(SOURCE_BUCKET, "a.txt")

        self.source.download_file.assert_called_once_with(SOURCE_BUCKET, "a.txt", mock.ANY)
        self.assertListEqual(self.uploaded, [(b"x" * 4096, TARGET_BUCKET, "copy_a.txt")])
        self.assertEqual(result.size_bytes, 4096)
        self.assertStagingDirEmpty()

    def test__copy__stages_in_unique_directory_per_call(self):
        self.executor.copy(SOURCE_BUCKET, "a.txt")
        self.executor.copy(SOURCE_BUCKET, "a.txt")

        staged_paths = [_.args[2] for _ in self.source.download_file.call_args_list]
        self.assertNotEqual(Path(staged_paths[0]).parent, Path(staged_paths[1]).parent)
        for staged_path in staged_paths:
            self.assertEqual(Path(staged_path).parent.parent, self.staging_dir)
            self.assertEqual(Path(staged_path).name, "copy_a.txt")

    def test__copy__keeps_staging_artifact_inside_staging_dir(self):
        self.executor.copy(SOURCE_BUCKET, "../../escape.txt")

        staged_path = Path(self.source.download_file.call_args.args[2])
        self.assertEqual(staged_path.parent.parent, self.staging_dir)
        self.assertEqual(self.uploaded[0][2], "copy_../../escape.txt")

    def test__copy__interrupted_download_raises_download_error(self):
        def download_file(bucket, key, filename):
            Path(filename).write_bytes(b"partial")
            raise ConnectionResetError("connection reset")

        self.source.download_file.side_effect = download_file

        with self.assertRaises(DownloadError):
            self.executor.copy(SOURCE_BUCKET, "a.txt")

        self.target.upload_file.assert_not_called()
        self.assertStagingDirEmpty()

    def test__copy__access_denied_upload_raises_upload_error(self):
        self.target.upload_file.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "PutObject"
        )

        with self.assertRaises(UploadError):
            self.executor.copy(SOURCE_BUCKET, "a.txt")

        self.assertStagingDirEmpty()

    def test__copy__cancellation_still_cleans_up(self):
        self.target.upload_file.side_effect = KeyboardInterrupt()

        with self.assertRaises(KeyboardInterrupt):
            self.executor.copy(SOURCE_BUCKET, "a.txt")

        self.assertStagingDirEmpty()


class ReplicationExecutorDeleteTests(ReplicationTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.executor = ReplicationExecutor(config=self.get_config())

    def test__delete__removes_replica_and_confirms_absence(self):
        self.target_s3.put_object(Bucket=TARGET_BUCKET, Key="copy_a.txt", Body=b"abc")
        self.target_s3.put_object(Bucket=TARGET_BUCKET, Key="copy_b.txt", Body=b"abc")

        replica_key = self.executor.delete("a.txt")

        self.assertEqual(replica_key, "copy_a.txt")
        self.assertListEqual(self.list_target_keys(), ["copy_b.txt"])

    def test__delete__absent_replica_succeeds(self):
        self.assertEqual(self.executor.delete("never-copied.txt"), "copy_never-copied.txt")


class ReplicationExecutorDeleteFailureTests(ReplicationTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.target = mock.MagicMock()
        self.executor = ReplicationExecutor(
            config=self.get_config(),
            client_factory=lambda role_arn, region: ScopedClient(role_arn, region, self.target),
        )

    def test__delete__waits_with_configured_bounds(self):
        self.executor.delete("a.txt")

        self.target.delete_object.assert_called_once_with(Bucket=TARGET_BUCKET, Key="copy_a.txt")
        self.target.get_waiter.assert_called_once_with("object_not_exists")
        self.target.get_waiter.return_value.wait.assert_called_once_with(
            Bucket=TARGET_BUCKET,
            Key="copy_a.txt",
            WaiterConfig={"Delay": 1, "MaxAttempts": 2},
        )

    def test__delete__confirmation_timeout_raises_confirm_error(self):
        self.target.get_waiter.return_value.wait.side_effect = WaiterError(
            name="ObjectNotExists", reason="Max attempts exceeded", last_response={}
        )

        with self.assertRaises(ConfirmError) as ctx:
            self.executor.delete("a.txt")

        self.assertEqual(ctx.exception.bucket, TARGET_BUCKET)
        self.assertEqual(ctx.exception.key, "copy_a.txt")

    def test__delete__rejected_delete_raises_delete_error(self):
        self.target.delete_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "DeleteObject"
        )

        with self.assertRaises(DeleteError):
            self.executor.delete("a.txt")

        self.target.get_waiter.assert_not_called()

    def test__delete__expired_credentials_make_no_delete_call(self):
        expired_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        self.executor = ReplicationExecutor(
            config=self.get_config(),
            client_factory=lambda role_arn, region: ScopedClient(
                role_arn, region, self.target, expired_at
            ),
        )

        with self.assertRaises(CredentialError):
            self.executor.delete("a.txt")

        self.target.delete_object.assert_not_called()
