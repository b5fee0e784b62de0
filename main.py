#!/usr/bin/env python3
"""
表对象双向同步服务
主程序入口
"""
import sys
import json
import signal
import time
import argparse
from pathlib import Path
from loguru import logger

# 添加项目路径到系统路径
sys.path.insert(0, str(Path(__file__).parent))

from table_sync.config.config import Config
from table_sync.core.sync_service import SyncService
from table_sync.monitor.logger import setup_logger


class SyncApplication:
    """同步应用主类"""

    def __init__(self, config_path: str = None, status_interval: int = 60):
        self.config_path = config_path
        self.status_interval = status_interval
        self.config = None
        self.sync_service = None
        self.running = False

        # 注册信号处理
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """信号处理器"""
        logger.info(f"Received signal {signum}, shutting down...")
        if self.sync_service:
            self.sync_service.cancel()
        self.stop()

    def initialize(self):
        """初始化应用"""
        try:
            # 加载配置
            self.config = Config(self.config_path)

            # 设置日志
            setup_logger(self.config.monitor)

            logger.info("=" * 60)
            logger.info("Table Object Sync Service")
            logger.info("=" * 60)
            logger.info(f"Config file: {self.config.config_path}")
            logger.info(f"Log level: {self.config.monitor.log_level}")
            logger.info(f"Tables: {self.config.sync.table_ids}, "
                        f"parallel: {self.config.sync.parallel_table_ids}")
            logger.info(f"Poll interval: {self.config.sync.poll_interval}s")

            # 创建同步服务
            self.sync_service = SyncService(self.config)

            logger.info("Application initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize application: {e}")
            raise

    def run_once(self) -> bool:
        """执行一轮同步，返回是否全部成功"""
        if not self.sync_service:
            raise RuntimeError("Application not initialized")

        try:
            result = self.sync_service.sync()
        finally:
            self._save_session()
            self.sync_service.close()

        for failure in result.push_failures:
            logger.warning(f"Push failed: {failure.collection_id}/{failure.uuid} "
                           f"({failure.action}): {failure.error}")
        if result.pull_error:
            logger.error(f"Pull failed: {result.pull_error}")
        return result.success

    def start(self):
        """启动应用"""
        if not self.sync_service:
            raise RuntimeError("Application not initialized")

        try:
            self.running = True

            # 启动同步服务
            self.sync_service.start()

            logger.info("Application started, press Ctrl+C to stop")

            # 主循环
            while self.running:
                try:
                    # 定期输出状态
                    time.sleep(self.status_interval)
                    if self.running:
                        self._print_status()
                except KeyboardInterrupt:
                    break

        except Exception as e:
            logger.error(f"Application error: {e}")
            raise
        finally:
            self.stop()

    def stop(self):
        """停止应用"""
        if not self.running:
            return

        self.running = False

        if self.sync_service:
            self.sync_service.close()
            self._save_session()

        logger.info("Application stopped")

    def _save_session(self):
        """续期过的凭证写回配置文件"""
        if self.sync_service and self.sync_service.guard.renewals:
            self.config.save()
            logger.info("Renewed session saved to config file")

    def _print_status(self):
        """打印状态信息"""
        if not self.sync_service:
            return

        status = self.sync_service.get_status()

        logger.info("-" * 50)
        logger.info("Sync Service Status")
        logger.info("-" * 50)
        logger.info(f"Running: {status['running']}, state: {status['state']}")
        if status['uptime_seconds'] is not None:
            logger.info(f"Uptime: {status['uptime_seconds']:.0f} seconds")

        sync_stats = status['sync_stats']
        logger.info(f"Passes: {sync_stats['passes']}, last sync: {sync_stats['last_sync']}")
        logger.info(f"Push: {sync_stats['pushed']} success, {sync_stats['push_failed']} failed")
        logger.info(f"Pull: {sync_stats['pulled_updates']} updated, "
                    f"{sync_stats['pulled_deletes']} deleted, {sync_stats['pull_failed']} failed passes")
        logger.info(f"Pending upload: {status['ledger_stats'].get('pending', 0)}")
        if 'health' in status:
            logger.info(f"Health: {status['health']['status']}")
        logger.info("-" * 50)


def main():
    """主函数"""
    parser = argparse.ArgumentParser(
        description='Table Object Bidirectional Sync Service'
    )
    parser.add_argument(
        '-c', '--config',
        help='Path to configuration file',
        default=None
    )
    parser.add_argument(
        '--init',
        action='store_true',
        help='Initialize configuration file'
    )
    parser.add_argument(
        '--once',
        action='store_true',
        help='Run a single sync pass and exit'
    )
    parser.add_argument(
        '--status',
        action='store_true',
        help='Show local ledger status and exit'
    )

    args = parser.parse_args()

    # 初始化配置文件
    if args.init:
        config = Config(args.config)
        config.save()
        print(f"Configuration file created: {config.config_path}")
        print("Please edit the configuration file and run the service again")
        return

    # 创建应用实例
    app = SyncApplication(args.config)
    app.initialize()

    # 显示本地状态
    if args.status:
        print(json.dumps(app.sync_service.get_status(), ensure_ascii=False, indent=2, default=str))
        app.sync_service.close()
        return

    # 单次同步
    if args.once:
        sys.exit(0 if app.run_once() else 1)

    # 启动服务
    try:
        app.start()
    except Exception as e:
        logger.error(f"Service failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
